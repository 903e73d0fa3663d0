"""Retention Manager Service.

Background retention manager that periodically deletes knowledge elements,
uploaded files and pending imports older than the configured retention rules.
"""

__version__ = "1.0.0"
__author__ = "Platform Team"
__email__ = "platform@example.com"
