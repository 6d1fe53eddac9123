import time
import subprocess
import httpx
import sys
import os
import signal

BASE_URL = "http://127.0.0.1:8000"
API_PREFIX = "/v1"

# Seeded by backend/seed_data.py
USER_ID = int(os.getenv("VERIFY_USER_ID", "1"))

def wait_for_server(retries=10, delay=2):
    url = f"{BASE_URL}/health"
    print(f"Waiting for server at {url}...")
    for i in range(retries):
        try:
            resp = httpx.get(url)
            if resp.status_code == 200:
                print("✅ Server is up!")
                return True
        except httpx.ConnectError:
            pass
        except Exception as e:
            print(f"Connect error: {e}")
            pass
        time.sleep(delay)
    print("❌ Server failed to start.")
    return False

def start_server(echo=False):
    env = {**os.environ, "DB_ECHO": "True"} if echo else None
    return subprocess.Popen(
        [sys.executable, "-m", "uvicorn", "backend.app.main:app", "--host", "127.0.0.1", "--port", "8000"],
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        env=env
    )

def run_verification():
    # 1. Start Server (First Run)
    print("\n--- [Step 1] Starting Server (Initial) ---")
    proc = start_server(echo=True)

    try:
        if not wait_for_server():
            server_logs = proc.communicate(timeout=2)
            print("Server Stdout:", server_logs[0].decode())
            print("Server Stderr:", server_logs[1].decode())
            raise Exception("Server start failed")

        # 2. Open a workday and push a position
        print("\n--- [Step 2] Starting Working Session (Persistence Test) ---")
        resp = httpx.post(f"{BASE_URL}{API_PREFIX}/working-sessions", json={
            "user_id": USER_ID,
            "latitude": -12.0464,
            "longitude": -77.0428,
            "notes": "persistence check"
        })

        if resp.status_code == 409:
            print("⚠️ Session already open (persistence working from previous run?)")
            session_id = resp.json()["details"]["active_session_id"]
        elif resp.status_code == 201:
            print("✅ Session Started Successfully")
            session_id = resp.json()["id"]
        else:
            print(f"❌ Session Start Failed: {resp.status_code} {resp.text}")
            raise Exception("Session start failed")

        resp = httpx.post(f"{BASE_URL}{API_PREFIX}/gps/samples", json={
            "user_id": USER_ID, "latitude": -12.0464, "longitude": -77.0428
        })
        if resp.status_code != 201:
            raise Exception(f"GPS push failed: {resp.status_code} {resp.text}")
        print("✅ GPS Sample Stored")

    finally:
        print("\n--- [Step 3] Stopping Server ---")
        proc.send_signal(signal.SIGTERM)
        proc.wait()

    time.sleep(2) # Wait for port release

    # 3. Restart Server
    print("\n--- [Step 4] Restarting Server (Verification) ---")
    proc2 = start_server()

    try:
        if not wait_for_server():
            raise Exception("Server restart failed")

        # 4. The open session survived the restart
        print("\n--- [Step 5] Reading Current Session (Post-Restart) ---")
        resp = httpx.get(f"{BASE_URL}{API_PREFIX}/users/{USER_ID}/working-sessions/current")
        if resp.status_code == 200 and resp.json()["session"]["id"] == session_id:
            print("✅ Session Persisted!")
            print(resp.json())
        else:
            print(f"❌ Session Lookup Failed (Persistence Issue?): {resp.status_code} {resp.text}")
            raise Exception("Session missing after restart")

        # 5. Close it
        print("\n--- [Step 6] Closing Session ---")
        resp = httpx.post(f"{BASE_URL}{API_PREFIX}/working-sessions/{session_id}/close", json={
            "latitude": -12.0464, "longitude": -77.0428
        })
        if resp.status_code == 200:
            print("✅ Session Closed")
            print(resp.json())
        else:
            print(f"❌ Close Failed: {resp.status_code} {resp.text}")

    finally:
        print("\n--- [Step 7] Stopping Server ---")
        proc2.send_signal(signal.SIGTERM)
        proc2.wait()

if __name__ == "__main__":
    run_verification()
