"""
certreg CLI Commands Package

Command modules for the certificate registry CLI.
"""

__all__ = ['certificate', 'config', 'issuer']
