#!/usr/bin/env python3
"""
Run the Scope of Appointment API.
"""

import os
import sys


def main() -> None:
    # Make src importable
    repo_root = os.path.dirname(os.path.abspath(__file__))
    sys.path.insert(0, os.path.join(repo_root, "src"))

    import uvicorn

    environment = os.getenv("APP_ENVIRONMENT", "development").lower()
    uvicorn.run(
        "web.app:create_app",
        factory=True,
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8000")),
        reload=environment not in {"production", "prod", "staging"},
    )


if __name__ == "__main__":
    main()
