"""
HTTP ingestion adapter for zapflow.

Quick start::

    from zapflow.api import create_app

    app = create_app()  # ready for uvicorn
"""

from zapflow.api.app import create_app

__all__ = ["create_app"]
