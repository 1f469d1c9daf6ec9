#!/usr/bin/env python
"""
Run the API from a source checkout.

    python run_server.py --dev
"""

from storecache.server import main

if __name__ == "__main__":
    main()
