"""Cross-cutting helpers: logging, telemetry and error handling."""
