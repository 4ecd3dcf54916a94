"""Shared utilities."""

from .logger import setup_logging, get_logger, get_struct_logger, PerformanceLogger

__all__ = ['setup_logging', 'get_logger', 'get_struct_logger', 'PerformanceLogger']
