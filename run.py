#!/usr/bin/env python3
"""
InvestNaija API Entry Point

Starts the FastAPI server on the configured host and port
(INVESTNAIJA_API_HOST / INVESTNAIJA_API_PORT).
"""

import sys

from investnaija.api import run_server
from investnaija.config import get_config


if __name__ == "__main__":
    config = get_config()
    print("🇳🇬 Starting InvestNaija API...")
    print("📒 Double-entry wallet ledger enabled")
    print("🔒 Audit trail active")
    print(f"🌐 API available at: http://localhost:{config.api_port}")
    print(f"📚 Documentation at: http://localhost:{config.api_port}/docs")
    print()

    try:
        run_server(host=config.api_host, port=config.api_port, debug=False)
    except KeyboardInterrupt:
        print("\n👋 Shutting down InvestNaija API...")
    except Exception as e:
        print(f"❌ Error starting server: {e}")
        sys.exit(1)
