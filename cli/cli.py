import argparse
import requests
import os
import sys
from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich.text import Text

# --- Configuration ---
BACKEND_API_URL = os.environ.get("TASKTRACK_API_URL", "http://localhost:8000")
console = Console()

STATUSES = ["todo", "in_progress", "testing", "fixing", "done", "closed"]

STATUS_STYLES = {
    "todo": "white",
    "in_progress": "cyan",
    "testing": "yellow",
    "fixing": "red",
    "done": "green",
    "closed": "dim",
}

def print_header():
    console.print(Panel.fit(Text("TASKTRACK :: task workflow client", style="bold cyan"), border_style="blue"))

# --- Helper Functions ---

def print_error(message, details=None):
    console.print(f"[bold red]Error:[/bold red] {message}")
    if details:
        console.print(Panel(str(details), title="Details", border_style="red"))

def print_success(message):
    console.print(f"[bold green]Success:[/bold green] {message}")

def api_url(path):
    return f"{BACKEND_API_URL}/api{path}"

def auth_headers(token):
    return {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}

def read_envelope(response):
    """
    Returns the 'data' part of a successful envelope, or None after
    printing the server's message.
    """
    try:
        body = response.json()
    except ValueError:
        print_error(f"Unexpected response ({response.status_code})", response.text)
        return None
    if not response.ok or not body.get("success"):
        print_error(body.get("message") or f"Request failed ({response.status_code})")
        return None
    return body.get("data") or {}

def get_auth_token(email, password):
    """
    Authenticates against the backend API and returns a JWT token.
    """
    try:
        response = requests.post(api_url("/auth/login"), json={"email": email, "password": password}, timeout=10)
    except requests.exceptions.RequestException:
        print_error(f"Failed to connect to backend at {BACKEND_API_URL}. Is it running?")
        return None
    data = read_envelope(response)
    return data.get("token") if data is not None else None

def render_tasks(tasks, title="Tasks"):
    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("Code", style="bold")
    table.add_column("Status")
    table.add_column("Title")
    table.add_column("Updated", style="dim")
    for task in tasks:
        style = STATUS_STYLES.get(task.get("status"), "white")
        table.add_row(
            task.get("code", ""),
            f"[{style}]{task.get('status')}[/{style}]",
            task.get("title", ""),
            (task.get("updatedAt") or "")[:19],
        )
    console.print(table)

# --- Command Handlers ---

def handle_login(token, args):
    # The token was already obtained in main(); print it for TASKTRACK_TOKEN.
    print_success("Logged in.")
    console.print(f"export TASKTRACK_TOKEN={token}")
    return token

def handle_list(token, args):
    params = {"status": args.status} if args.status else None
    response = requests.get(api_url("/tasks"), headers=auth_headers(token), params=params, timeout=10)
    data = read_envelope(response)
    if data is None:
        return None
    tasks = data.get("tasks", [])
    render_tasks(tasks, title=f"Tasks ({args.status})" if args.status else "Tasks")
    return tasks

def handle_create(token, args):
    payload = {"title": args.title}
    if args.description is not None:
        payload["description"] = args.description
    if args.status:
        payload["status"] = args.status
    response = requests.post(api_url("/tasks"), headers=auth_headers(token), json=payload, timeout=10)
    data = read_envelope(response)
    if data is None:
        return None
    task = data["task"]
    print_success(f"Created {task['code']}: {task['title']}")
    return task

def handle_testing(token, args):
    response = requests.post(api_url(f"/task/{args.code}"), headers=auth_headers(token), timeout=10)
    data = read_envelope(response)
    if data is None:
        return None
    print_success(f"{args.code} moved to testing")
    return data["task"]

def handle_fail(token, args):
    response = requests.post(api_url(f"/task-failed/{args.code}"), headers=auth_headers(token), timeout=10)
    data = read_envelope(response)
    if data is None:
        return None
    print_success(f"{args.code} moved to fixing")
    return data["task"]

def handle_bulk_fail(token, args):
    response = requests.post(
        api_url("/bulk-task-failed"),
        headers=auth_headers(token),
        json={"ids": args.codes},
        timeout=30,
    )
    data = read_envelope(response)
    if data is None:
        return None
    print_success(f"{data['updated']} of {len(args.codes)} task(s) moved to fixing")
    render_tasks(data.get("tasks", []), title="Updated")
    return data

def handle_logout(token, args):
    response = requests.post(api_url("/auth/logout"), headers=auth_headers(token), timeout=10)
    if read_envelope(response) is None:
        return None
    print_success("Logged out. Unset TASKTRACK_TOKEN to forget the token locally.")
    return True

# Commands that accept the automation API key instead of a user token.
API_KEY_COMMANDS = {"fail", "bulk-fail"}

def build_parser():
    parser = argparse.ArgumentParser(description="Task Tracker CLI")
    auth_group = parser.add_argument_group("Authentication")
    auth_group.add_argument("-u", "--email", default=os.environ.get("TASKTRACK_EMAIL"))
    auth_group.add_argument("-p", "--password", default=os.environ.get("TASKTRACK_PASSWORD"))
    auth_group.add_argument("--token", default=os.environ.get("TASKTRACK_TOKEN"))
    auth_group.add_argument("--api-key", default=os.environ.get("TASKTRACK_API_KEY"),
                            help="Automation key, only used by 'fail' and 'bulk-fail'")

    subparsers = parser.add_subparsers(dest="command", required=True)

    login_parser = subparsers.add_parser("login", help="Log in and print a token")
    login_parser.set_defaults(func=handle_login)

    list_parser = subparsers.add_parser("list", help="List your tasks")
    list_parser.add_argument("--status", choices=STATUSES)
    list_parser.set_defaults(func=handle_list)

    create_parser = subparsers.add_parser("create", help="Create a task")
    create_parser.add_argument("title")
    create_parser.add_argument("-d", "--description")
    create_parser.add_argument("--status", choices=STATUSES)
    create_parser.set_defaults(func=handle_create)

    testing_parser = subparsers.add_parser("testing", help="Move an in_progress task to testing")
    testing_parser.add_argument("code")
    testing_parser.set_defaults(func=handle_testing)

    fail_parser = subparsers.add_parser("fail", help="Move a task to fixing")
    fail_parser.add_argument("code")
    fail_parser.set_defaults(func=handle_fail)

    bulk_parser = subparsers.add_parser("bulk-fail", help="Move several tasks to fixing")
    bulk_parser.add_argument("codes", nargs="+")
    bulk_parser.set_defaults(func=handle_bulk_fail)

    logout_parser = subparsers.add_parser("logout", help="Log out")
    logout_parser.set_defaults(func=handle_logout)

    return parser

def resolve_token(args):
    if args.command in API_KEY_COMMANDS and args.api_key:
        return args.api_key
    if args.token and args.command != "login":
        return args.token
    if not args.email or not args.password:
        print_error("Provide --token (or TASKTRACK_TOKEN), or --email and --password.")
        return None
    return get_auth_token(args.email, args.password)

def main(argv=None):
    print_header()
    args = build_parser().parse_args(argv)
    token = resolve_token(args)
    if not token:
        return 1
    try:
        result = args.func(token, args)
    except requests.exceptions.RequestException as e:
        print_error(f"Failed to reach backend at {BACKEND_API_URL}", str(e))
        return 1
    return 0 if result is not None else 1

if __name__ == "__main__":
    sys.exit(main())
