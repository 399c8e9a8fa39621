"""Commission resolution, allocation and payroll batch engine."""

__version__ = "1.0.0"
