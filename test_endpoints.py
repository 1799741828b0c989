#!/usr/bin/env python3
"""
Smoke script for the EzStudy backend endpoints
Run this after starting the backend server (python -m ezstudy.main)
"""

import json
import uuid

import requests

# Configuration
BASE_URL = "http://127.0.0.1:3001"
SESSION_ID = f"smoke-{uuid.uuid4().hex[:8]}"


def check_health():
    """Check the health endpoints"""
    print("=== Health ===")
    for endpoint in ["/api/health", "/api/health/providers"]:
        try:
            response = requests.get(f"{BASE_URL}{endpoint}", timeout=10)
            if response.status_code == 200:
                print(f"✅ {endpoint} - {response.json()}")
            else:
                print(f"❌ {endpoint} - {response.text}")
        except requests.RequestException as e:
            print(f"❌ {endpoint} - Error: {e}")


def check_chat():
    """Send two turns on one session and a file upload"""
    print("\n=== Chat ===")
    config = json.dumps({"mode": "tutor", "tone": "balanced", "personality": "friendly"})

    for message in ["What is photosynthesis?", "Summarize that in one sentence."]:
        response = requests.post(
            f"{BASE_URL}/api/chat",
            data={"userMessage": message, "config": config, "sessionId": SESSION_ID},
            timeout=300,
        )
        if response.status_code == 200:
            data = response.json()
            print(f"✅ [{data['usage']['provider']}/{data['usage']['providerUsed']}] "
                  f"{data['choices'][0]['message']['content'][:80]!r}")
        else:
            print(f"❌ Chat failed: {response.text}")
            return

    history = requests.get(f"{BASE_URL}/api/sessions/{SESSION_ID}", timeout=10).json()
    print(f"✅ Session holds {len(history['messages'])} turns")

    files = [("files", ("notes.txt", b"Mitochondria are the powerhouse of the cell.", "text/plain"))]
    response = requests.post(
        f"{BASE_URL}/api/chat",
        data={"userMessage": "What do my notes say?", "config": config},
        files=files,
        timeout=300,
    )
    print("✅ Chat with file" if response.status_code == 200 else f"❌ Chat with file failed: {response.text}")

    response = requests.post(f"{BASE_URL}/api/chat", data={"userMessage": "where can I buy heroin"}, timeout=10)
    print("✅ Moderation blocked request" if response.status_code == 400 else f"❌ Moderation missed: {response.text}")

    requests.delete(f"{BASE_URL}/api/sessions/{SESSION_ID}", timeout=10)


def check_study_tools():
    """Quiz and notes generation"""
    print("\n=== Study tools ===")
    response = requests.post(f"{BASE_URL}/api/quiz", json={"topic": "cell biology", "difficulty": "easy"}, timeout=300)
    if response.status_code == 200:
        print(f"✅ Quiz: {len(response.json()['questions'])} questions")
    else:
        print(f"❌ Quiz failed: {response.text}")

    response = requests.post(
        f"{BASE_URL}/api/summarize",
        json={"text": "The mitochondrion produces ATP through cellular respiration.", "style": "bullet point"},
        timeout=300,
    )
    print("✅ Notes generated" if response.status_code == 200 else f"❌ Summarize failed: {response.text}")


def check_image_upload():
    """Upload a 1x1 PNG as profile image"""
    print("\n=== Image Upload ===")
    test_image_data = b'\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\x00\x00\x00\x01\x00\x00\x00\x01\x08\x02\x00\x00\x00\x90wS\xde\x00\x00\x00\tpHYs\x00\x00\x0b\x13\x00\x00\x0b\x13\x01\x00\x9a\x9c\x18\x00\x00\x00\nIDATx\x9cc```\x00\x00\x00\x04\x00\x01\xdd\x8d\xb4\x1c\x00\x00\x00\x00IEND\xaeB`\x82'
    files = {"profileImage": ("test.png", test_image_data, "image/png")}
    response = requests.post(f"{BASE_URL}/api/upload-profile-image", files=files, timeout=30)
    if response.status_code == 200:
        print(f"✅ Image URL: {response.json()['imageUrl']}")
    else:
        print(f"❌ Image upload failed: {response.text}")


def main():
    print("🚀 Starting EzStudy Backend smoke checks")
    print(f"Testing against: {BASE_URL}")
    print("=" * 50)

    check_health()
    check_chat()
    check_study_tools()
    check_image_upload()

    print("\n" + "=" * 50)
    print("🎉 All checks completed!")


if __name__ == "__main__":
    main()
