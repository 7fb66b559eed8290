"""Docker, database, proxy and host integrations used while provisioning."""
