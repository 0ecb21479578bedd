#!/usr/bin/env python3
"""
Entry point for the hackathon Registrar service.

Usage:
    python run.py

Environment Variables:
    FLASK_ENV: development, production or testing (default: development)
    PORT: Port to run on (default: 5000)
    DATABASE_URL: SQLAlchemy database URL
    REDIS_URL: Redis URL for real-time events
    EVENT_SINK: redis or log (default: redis)
"""
import os


def run_registrar():
    """Run the registrar API service."""
    from registrar.app import create_app

    app = create_app()
    port = int(os.getenv('PORT', 5000))
    debug = os.getenv('FLASK_ENV', 'development') == 'development'

    app.logger.info("Starting Registrar on port %s...", port)
    app.run(host='0.0.0.0', port=port, debug=debug)


if __name__ == '__main__':
    run_registrar()
