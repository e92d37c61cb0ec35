"""
Task rewards backend: daily task allocation and earnings accrual.
"""

__version__ = "0.1.0"
