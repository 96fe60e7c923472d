"""
Console Harness for the Car Expert diagnostic client

Simple console loop that drives DiagnosticManager against a running
Session Authority, before any web front end is involved.

Credentials:
    CAR_EXPERT_TOKEN                      bearer token, or
    CAR_EXPERT_USER + CAR_EXPERT_PASSWORD login at POST /token
"""

import getpass
import logging
import os
import sys

from car_expert.commands import FetchHistory, NewDiagnostic, StartDiagnostic, SubmitAnswer
from car_expert.config import AuthorityConfig
from car_expert.core.diagnostic_manager import DiagnosticManager
from car_expert.core.protocol_client import DiagnosisProtocolClient
from car_expert.errors import (
    AuthenticationExpired,
    DiagnosticError,
    MalformedResponse,
    ValidationRejected,
)
from car_expert.persistence import SessionArchive
from car_expert.results import IllegalCommand
from car_expert.utils.authority_client import SessionAuthorityClient, build_http
from car_expert.utils.credentials import PasswordCredentials, StaticCredentials
from car_expert.utils.display_helpers import (
    format_history_detail,
    format_history_summary,
    format_turn,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

ANSWER_KEYS = {'y': 'yes', 'yes': 'yes', 'n': 'no', 'no': 'no'}
EXIT_COMMANDS = {"quit", "exit", "stop"}


def print_separator(char="=", length=60):
    """Print a separator line"""
    print(char * length)


def build_credentials(http):
    """Pick a credential provider from the environment. Login goes through http."""
    token = os.environ.get('CAR_EXPERT_TOKEN')
    if token:
        return StaticCredentials(token)

    username = os.environ.get('CAR_EXPERT_USER') or input("Email: ").strip()
    password = os.environ.get('CAR_EXPERT_PASSWORD') or getpass.getpass("Password: ")
    return PasswordCredentials(http, username, password)


def choose_diagnostic_type(config):
    """Prompt for a diagnostic type. Returns None when the deployment allows it."""
    types = list(config.diagnostic_types.items())
    print("\nSelect your diagnostic type:")
    for index, (value, label) in enumerate(types, start=1):
        print(f"  {index}. {label}")
    if not config.require_diagnostic_type:
        print("  0. Let the system decide")

    while True:
        choice = input("> ").strip()
        if choice == "0" and not config.require_diagnostic_type:
            return None
        if choice.isdigit() and 1 <= int(choice) <= len(types):
            return types[int(choice) - 1][0]
        print("Please pick one of the listed numbers.")


def run_diagnostic(manager, config):
    """Run one questionnaire to conclusion. Returns False if the user quit."""
    diagnostic_type = choose_diagnostic_type(config)
    if diagnostic_type is not None:
        print(f"\nStarting {config.label_for(diagnostic_type)} diagnostic")

    result = manager.handle(StartDiagnostic(diagnostic_type))
    if isinstance(result, IllegalCommand):
        print(f"\nCannot start: {result.reason}")
        return True

    print(f"\n{format_turn(result.view.transcript[-1])}\n")

    while not result.concluded:
        raw = input("(yes/no) > ").strip().lower()
        if raw in EXIT_COMMANDS:
            manager.handle(NewDiagnostic())
            return False
        if raw not in ANSWER_KEYS:
            print("Please answer yes or no.")
            continue

        try:
            outcome = manager.handle(SubmitAnswer(ANSWER_KEYS[raw], session_id=result.view.session_id))
        except MalformedResponse as e:
            print(f"\nThe diagnosis service sent an unreadable reply ({e}). Session ended.")
            return True
        except AuthenticationExpired:
            raise
        except DiagnosticError as e:
            print(f"\nError processing the answer: {e}. You can answer again.")
            continue

        if isinstance(outcome, IllegalCommand):
            print(f"\n{outcome.reason}")
            return True

        result = outcome
        print(f"\n{format_turn(result.view.transcript[-1])}\n")

    return True


def show_history(manager):
    """Print stored sessions and let the user expand one"""
    result = manager.handle(FetchHistory())
    if not result.sessions:
        print("\nNo previous diagnostics found")
        return

    print_separator("-")
    for view in result.sessions:
        print(format_history_summary(view))
    print_separator("-")

    choice = input("Session id to expand (Enter to skip): ").strip()
    for view in result.sessions:
        if view.session_id == choice:
            print(f"\n{format_history_detail(view)}\n")


def main():
    """Run console harness"""
    print_separator()
    print("CAR EXPERT SYSTEM - CONSOLE")
    print_separator()

    try:
        config = AuthorityConfig.from_env()
    except ValueError as e:
        print(f"\nInvalid configuration: {e}")
        return 1

    # Login and diagnosis calls share one connection pool
    http = build_http(config)

    try:
        authority = SessionAuthorityClient(http, build_credentials(http))
        manager = DiagnosticManager(
            DiagnosisProtocolClient(authority, config),
            archive=SessionArchive(config.archive_dir)
        )

        while True:
            action = input("\n[d]iagnose, [h]istory, [q]uit > ").strip().lower()
            try:
                if action in ("d", "diagnose"):
                    if not run_diagnostic(manager, config):
                        break
                elif action in ("h", "history"):
                    show_history(manager)
                elif action in ("q", "quit") or action in EXIT_COMMANDS:
                    break
            except AuthenticationExpired:
                print("\nYour session expired. Please log in again.")
                return 1
            except ValidationRejected as e:
                print(f"\n{e}")
            except DiagnosticError as e:
                logger.error(f"Diagnostic service error: {e}")
                print(f"\nError talking to the diagnosis service: {e}")

    except KeyboardInterrupt:
        print("\n\nInterrupted by user (Ctrl+C)")
    finally:
        http.close()

    print_separator()
    print("Goodbye")
    print_separator()
    return 0


if __name__ == '__main__':
    sys.exit(main())
