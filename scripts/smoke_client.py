import os
import sys
import json
import requests

BASE_URL = os.environ.get("SMOKE_URL") or os.environ.get("DEV_URL", "http://127.0.0.1:5002")
API = f"{BASE_URL.rstrip('/')}/api"

SAMPLES = [
    ({"chargeType": "mrp", "products": [{"name": "Soap", "price": 50, "mrp": 45}]}, None, "violation_detected"),
    ({"chargeType": "service_charge", "amount": 200, "vendor": "Cafe X"}, None, "legal"),
    ({"chargeType": "challan", "amount": 5000}, None, "insufficient_info"),
]


def get(path: str):
    r = requests.get(f"{API}{path}", timeout=10)
    r.raise_for_status()
    return r


def post(path: str, payload: dict):
    r = requests.post(f"{API}{path}", json=payload, timeout=20)
    r.raise_for_status()
    return r


def main():
    print(f"[smoke] Target: {API}")
    print("[smoke] /health:", get("/health").status_code)
    print("[smoke] /version:", get("/version").status_code)
    print("[smoke] /rules:", get("/rules").json().get("count"))

    failures = 0
    for data, query, expected in SAMPLES:
        body = post("/analyze", {"data": data, "query": query}).json()
        ok = body.get("status") == expected
        failures += 0 if ok else 1
        print(f"[smoke] /analyze {data['chargeType']}: {body.get('status')} (expected {expected})")
        if not ok:
            print(json.dumps(body, indent=2, ensure_ascii=False)[:600])
    if failures:
        raise SystemExit(f"{failures} sample(s) returned an unexpected status")


if __name__ == "__main__":
    try:
        main()
    except Exception as e:
        print("[smoke] FAILED:", e)
        sys.exit(1)
