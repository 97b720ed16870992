#!/usr/bin/env python3
"""Serve the DepSync API with uvicorn.

DEPSYNC_HOST and DEPSYNC_PORT pick the bind address; DEPSYNC_CONFIG picks the
config file that ``POST /api/sync`` reads.
"""

import os

import uvicorn

if __name__ == "__main__":
    host = os.environ.get("DEPSYNC_HOST", "127.0.0.1")
    port = int(os.environ.get("DEPSYNC_PORT", "8000"))
    print(f"DepSync API on http://{host}:{port} (docs at /docs)")

    uvicorn.run(
        "apps.web.main:app",
        host=host,
        port=port,
        reload=True,
        reload_dirs=["apps", "depsync"],
    )
