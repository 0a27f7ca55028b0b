"""
Service starter - reads SERVICE/PORT env vars and starts the requested app.
Used by Docker/Railway.
"""
import os
import sys
import uvicorn

SERVICE = os.environ.get("SERVICE", "bityield")
PORT = int(os.environ.get("PORT", 0))

SERVICES = {
    "bityield": ("agents.bityield.main:app", 8007),
}


def main():
    if SERVICE not in SERVICES:
        print(f"ERROR: Unknown service '{SERVICE}'. Options: {', '.join(SERVICES.keys())}")
        sys.exit(1)

    app_path, default_port = SERVICES[SERVICE]
    uvicorn.run(app_path, host="0.0.0.0", port=PORT or default_port)


if __name__ == "__main__":
    main()
