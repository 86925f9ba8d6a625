"""
AssetFlow Kernel

Shared infrastructure for the asset lifecycle system:
- Typed exceptions with machine-readable codes
- Structured JSON logging
- Database base classes, engine and money types
- Injectable clock and workflow value objects
- Principal / permission values
- System-wide audit log
"""

__version__ = "0.1.0"
