"""SwasthyaConnect healthcare portal API."""
