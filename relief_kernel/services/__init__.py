"""Kernel services shared by every module."""

from relief_kernel.services.base import BaseService

__all__ = ["BaseService"]
