"""
Invoice Scanner - Source Package

Turns a photographed invoice or utility bill into a reviewed, persisted
record that can be exported as a flat table.

DESIGN PRINCIPLES:
1. AI extracts → Human reviews → System reconciles
2. Math mismatches are advisory, never blocking
3. No record is persisted without explicit confirmation
4. Failures are reported, never fatal
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Invoice Scanner Team"
