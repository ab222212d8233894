"""HTTP API for payroll periods."""
