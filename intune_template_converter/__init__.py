"""
Intune Administrative Template Converter
=========================================
Converts Intune Administrative Template (ADMX-backed) policies into
Settings Catalog policies against a live tenant via Microsoft Graph.

Source policies are never modified. Every converted setting carries a
match confidence (high / medium / low) so results can be reviewed before
the new policy is assigned.
"""

__version__ = "1.0.0"
__author__ = "Intune Administrative Template Converter"
