#!/usr/bin/env python3
"""
Smoke checks against a running lead attribution service.

Start the app first (``python app.py``), then run this script.
"""

import sys
import time
import uuid

import requests

BROWSER_UA = "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15) SmokeTest"


def check_health(base_url="http://localhost:8000"):
    """Check the health endpoint."""
    try:
        response = requests.get(f"{base_url}/health", timeout=10)
        if response.status_code == 200:
            print(f"✅ Health check passed: {response.json()}")
            return True
        print(f"❌ Health check failed: {response.status_code}")
        return False
    except requests.exceptions.RequestException as e:
        print(f"❌ Health check error: {e}")
        return False


def check_track_visit(base_url="http://localhost:8000"):
    """Record a campaign visit and read back its attribution."""
    visit = {
        "visitor_id": f"smoke-{uuid.uuid4().hex[:8]}",
        "url": "https://getshortcut.co/linkedin?utm_source=linkedin&utm_campaign=holiday-2025",
    }
    try:
        response = requests.post(f"{base_url}/track/visit", json=visit, timeout=10)
        if response.status_code == 200 and response.json()["attribution"]["source"] == "linkedin":
            print(f"✅ Visit tracking passed: {response.json()}")
            return True
        print(f"❌ Visit tracking failed: {response.status_code} {response.text}")
        return False
    except requests.exceptions.RequestException as e:
        print(f"❌ Visit tracking error: {e}")
        return False


def check_lead_submission(base_url="http://localhost:8000"):
    """Submit a lead, then submit it again inside the cool-down window."""
    sample_lead = {
        "first_name": "Smoke",
        "last_name": "Test",
        "email": f"smoke.{uuid.uuid4().hex[:8]}@example.com",
        "phone": "555-0100",
        "company": "Smoke Test Inc",
        "platform": "linkedin",
        "page_url": "https://getshortcut.co/linkedin?utm_source=linkedin",
    }
    headers = {"User-Agent": BROWSER_UA}

    try:
        first = requests.post(f"{base_url}/webhooks/lead", json=sample_lead, headers=headers, timeout=30)
        if first.status_code != 200:
            print(f"❌ Lead submission failed: {first.status_code}")
            print(f"Response: {first.text}")
            return False
        print(f"✅ Lead submission passed: {first.json()}")

        second = requests.post(f"{base_url}/webhooks/lead", json=sample_lead, headers=headers, timeout=30)
        if second.status_code == 429:
            print(f"✅ Cool-down passed: {second.json()['message']}")
            return True
        print(f"❌ Repeat submission not rate limited: {second.status_code} {second.text}")
        return False

    except requests.exceptions.RequestException as e:
        print(f"❌ Lead submission error: {e}")
        return False


def check_bot_rejected(base_url="http://localhost:8000"):
    """Crawler submissions must be refused."""
    lead = {"first_name": "Crawler", "email": "crawler@example.com"}
    try:
        response = requests.post(
            f"{base_url}/webhooks/lead",
            json=lead,
            headers={"User-Agent": "Googlebot/2.1"},
            timeout=10,
        )
        if response.status_code == 403:
            print("✅ Bot rejection passed")
            return True
        print(f"❌ Bot was not rejected: {response.status_code}")
        return False
    except requests.exceptions.RequestException as e:
        print(f"❌ Bot rejection error: {e}")
        return False


def main():
    print("🚀 Smoke testing the lead attribution service")
    print("=" * 50)

    base_url = sys.argv[1] if len(sys.argv) > 1 else "http://localhost:8000"

    print("⏳ Waiting for application to start...")
    time.sleep(2)

    checks = [
        ("Health Check", lambda: check_health(base_url)),
        ("Visit Tracking", lambda: check_track_visit(base_url)),
        ("Lead Submission & Cool-down", lambda: check_lead_submission(base_url)),
        ("Bot Rejection", lambda: check_bot_rejected(base_url)),
    ]

    passed = 0
    for name, check in checks:
        print(f"\n🧪 Running {name}...")
        if check():
            passed += 1
        else:
            print(f"❌ {name} failed")

    print("\n" + "=" * 50)
    print(f"📊 Results: {passed}/{len(checks)} checks passed")
    return 0 if passed == len(checks) else 1


if __name__ == "__main__":
    sys.exit(main())
