#!/usr/bin/env python3
"""Standalone embed host — serve the host page and the token endpoint.

    cd samples/embed
    poetry run python app.py

Requires WA_API_URL and WA_API_KEY in your environment (or a .env file).
Starts on http://localhost:7000/embed.

Environment variables:
    PORT                — Server port (default: 7000)
    FRAME_ORIGINS       — Origins allowed to be framed
    CONNECT_ORIGINS     — Origins the page may connect to
    WA_IFRAME_SRC       — Widget iframe URL
"""
from wa_embed.standalone import main

if __name__ == "__main__":
    main()
