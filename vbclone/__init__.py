"""Linked-clone provisioning and teardown for VirtualBox guests."""

__version__ = '0.1.0'
