"""sitebox - provision self-contained PHP sites as docker compose projects."""

__version__ = "0.1.0"
