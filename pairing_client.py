#!/usr/bin/env python3
import requests
import json
import os
import sys

BASE_URL = os.environ.get("PAIRING_API_URL", "http://localhost:8000/api/v1")

# Users created in this session, by display name
STORED_USERS = {}
CURRENT = {"account_id": None, "role": None}

def clear_screen():
    os.system('cls' if os.name == 'nt' else 'clear')

def print_header(title: str):
    clear_screen()
    print("=" * 50)
    print(f" {title} ".center(50, "="))
    if CURRENT["account_id"]:
        role = f" ({CURRENT['role']})" if CURRENT["role"] else ""
        print(f"Acting as {CURRENT['account_id']}{role}")
    print("=" * 50)
    print()

def get_input(prompt: str, default: str = None) -> str:
    if default:
        result = input(f"{prompt} [{default}]: ").strip()
        if not result:
            return default
        return result
    return input(f"{prompt}: ").strip()

def pause():
    input("\nPress Enter to continue...")

def make_request(method, endpoint, data=None, params=None):
    """Send a request as the current account and print the outcome"""
    url = f"{BASE_URL}{endpoint}"
    headers = {}
    if CURRENT["account_id"]:
        headers["X-Account-Id"] = CURRENT["account_id"]
    if CURRENT["role"]:
        headers["X-Account-Role"] = CURRENT["role"]

    print(f"\n{method.upper()} {url}")
    if data:
        print(f"Request data: {json.dumps(data, indent=2)}")

    try:
        response = requests.request(method, url, json=data, params=params, headers=headers)
    except requests.exceptions.RequestException as e:
        print(f"Request error: {str(e)}")
        return None

    if 200 <= response.status_code < 300:
        if not response.text:
            print(f"Done ({response.status_code})")
            return {}
        result = response.json()
        print(f"Response: {json.dumps(result, indent=2)}")
        return result

    try:
        detail = response.json().get("detail")
    except ValueError:
        detail = response.text
    print(f"Error {response.status_code}: {detail}")
    return None

# Users

def create_user():
    print_header("Create User")
    email = get_input("Email")
    name = get_input("Display name", email.split("@")[0])

    result = make_request("post", "/users/", {"email": email, "display_name": name})
    if result:
        STORED_USERS[name] = result["id"]
        if not CURRENT["account_id"]:
            CURRENT["account_id"] = result["id"]
    pause()

def switch_user():
    print_header("Switch Account")
    if not STORED_USERS:
        print("No users created in this session.")
        CURRENT["account_id"] = get_input("Account id") or None
        return

    names = list(STORED_USERS)
    for i, name in enumerate(names, 1):
        print(f"{i}. {name} ({STORED_USERS[name]})")
    choice = get_input("\nSelect user")
    if choice.isdigit() and 1 <= int(choice) <= len(names):
        CURRENT["account_id"] = STORED_USERS[names[int(choice) - 1]]

def pick_user(prompt: str):
    names = [n for n, uid in STORED_USERS.items() if uid != CURRENT["account_id"]]
    for i, name in enumerate(names, 1):
        print(f"{i}. {name}")
    choice = get_input(prompt)
    if choice.isdigit() and 1 <= int(choice) <= len(names):
        return STORED_USERS[names[int(choice) - 1]]
    return choice or None

# Invitations

def send_invitation():
    print_header("Send Invitation")
    receiver_id = pick_user("Receiver (number or account id)")
    if not receiver_id:
        return
    anniversary = get_input("Anniversary date (YYYY-MM-DD)")
    message = get_input("Message (optional)")

    data = {"receiver_id": receiver_id, "anniversary_date": anniversary}
    if message:
        data["message"] = message
    make_request("post", "/invitations/", data)
    pause()

def list_invitations(box: str):
    print_header(f"{box.title()} Invitations")
    status = get_input("Status (pending/accepted/rejected/expired)", "pending")
    invitations = make_request("get", f"/invitations/{box}", params={"status": status})
    if invitations is not None and not invitations:
        print("\nNo invitations.")
    pause()

def respond_to_invitation(action: str):
    print_header(f"{action.title()} Invitation")
    invitation_id = get_input("Invitation id")
    make_request("patch", f"/invitations/{invitation_id}", {"action": action})
    pause()

def invitation_menu():
    while True:
        print_header("Invitations")
        print("1. Send Invitation")
        print("2. Received Invitations")
        print("3. Sent Invitations")
        print("4. Accept Invitation")
        print("5. Reject Invitation")
        print("6. Cancel Invitation")
        print("0. Back to Main Menu")

        choice = get_input("\nEnter your choice")

        if choice == "0":
            break
        elif choice == "1":
            send_invitation()
        elif choice == "2":
            list_invitations("received")
        elif choice == "3":
            list_invitations("sent")
        elif choice == "4":
            respond_to_invitation("accept")
        elif choice == "5":
            respond_to_invitation("reject")
        elif choice == "6":
            respond_to_invitation("cancel")

# Couples

def open_couple():
    print_header("Open Couple")
    anniversary = get_input("Anniversary date (YYYY-MM-DD)")
    result = make_request("post", "/couples/", {"anniversary_date": anniversary})
    if result:
        print(f"\nShare this pairing code with your partner: {result['pairing_code']}")
    pause()

def join_couple():
    print_header("Join Couple")
    code = get_input("Pairing code")
    make_request("post", "/couples/join", {"code": code})
    pause()

def show(endpoint: str, title: str):
    print_header(title)
    make_request("get", endpoint)
    pause()

def leave_couple():
    print_header("Leave Couple")
    if get_input("Really leave your couple? (y/n)", "n").lower() == "y":
        make_request("delete", "/couples/leave")
    pause()

def couple_menu():
    while True:
        print_header("Couple")
        print("1. My Couple")
        print("2. My Partner")
        print("3. Couple Stats")
        print("4. Open Couple (get a pairing code)")
        print("5. Join Couple by Code")
        print("6. Leave Couple")
        print("0. Back to Main Menu")

        choice = get_input("\nEnter your choice")

        if choice == "0":
            break
        elif choice == "1":
            show("/couples/me", "My Couple")
        elif choice == "2":
            show("/couples/partner", "My Partner")
        elif choice == "3":
            show("/couples/stats", "Couple Stats")
        elif choice == "4":
            open_couple()
        elif choice == "5":
            join_couple()
        elif choice == "6":
            leave_couple()

def main_menu():
    while True:
        print_header("Couple Pairing Client")

        print("1. Create User")
        print("2. Switch Account")
        print("3. Invitations")
        print("4. Couple")
        print("5. Reconcile Memberships")
        print("6. All Couples")
        print("7. Invitation Stats")
        print("8. Toggle Admin Role")
        print("0. Exit")

        choice = get_input("\nEnter your choice")

        if choice == "0":
            print("\nExiting...")
            sys.exit(0)
        elif choice == "1":
            create_user()
        elif choice == "2":
            switch_user()
        elif choice == "3":
            invitation_menu()
        elif choice == "4":
            couple_menu()
        elif choice == "5":
            print_header("Reconcile Memberships")
            make_request("post", "/maintenance/reconcile", params={"repair": "true"})
            pause()
        elif choice == "6":
            show("/couples/", "All Couples")
        elif choice == "7":
            show("/invitations/stats", "Invitation Stats")
        elif choice == "8":
            CURRENT["role"] = None if CURRENT["role"] else "admin"

if __name__ == "__main__":
    try:
        # Check if server is running
        requests.get(f"{BASE_URL}/users/")
        main_menu()
    except requests.ConnectionError:
        print(f"Error: Cannot connect to the API at {BASE_URL}")
        print("Make sure your FastAPI server is running.")
        sys.exit(1)
