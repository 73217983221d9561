"""
Bus Network Import Module Entry Point

Allows running the batch import via:
    python -m busnet.ingest [command] [args]
"""

from .orchestrator import main

if __name__ == "__main__":
    main()
