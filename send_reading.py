# send_reading.py
# Invia una lettura al ricevitore HTTP (utile per test manuali senza sensore)
import argparse
import json
import sys

import requests

from settings import load_settings


def send_reading(url: str, rtype: str, value: float, timestamp=None, timeout: float = 15) -> dict:
    body = {"type": rtype, "value": value}
    if timestamp:
        body["timestamp"] = timestamp
    r = requests.post(f"{url.rstrip('/')}/api/weather/data", json=body, timeout=timeout)
    r.raise_for_status()
    return r.json()


def main(argv=None):
    settings = load_settings()
    ap = argparse.ArgumentParser(description="POST a temperature/humidity reading to the receiver")
    ap.add_argument("type", help="reading type, e.g. temperature or humidity")
    ap.add_argument("value", type=float)
    ap.add_argument("--timestamp", help="ISO-8601 time (default: server time)")
    ap.add_argument("--url", default=settings.receiver_url, help="receiver base URL")
    args = ap.parse_args(argv)

    try:
        out = send_reading(args.url, args.type, args.value, args.timestamp)
    except requests.RequestException as e:
        print(f"[ERRORE] {e}", file=sys.stderr)
        return 1
    print(json.dumps(out))
    return 0


if __name__ == "__main__":
    sys.exit(main())
