"""Payroll run orchestrator.

Runs payroll for a period: one calculation per employee, failures isolated
and counted, completion announced through in-process notifications.
"""

__version__ = "1.0.0"
