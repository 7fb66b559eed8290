"""Site parameters, records, provisioning workflow and rollback."""
