"""Request middleware: logging, timing, JWT auth, rate limits, security headers."""
