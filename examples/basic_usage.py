"""
Example: Basic usage of ovirt_sdk
=================================

This example shows how to connect to an oVirt engine, browse the
service tree and handle the SDK's errors.
"""

import logging

from ovirt_sdk import AuthError, Connection, NotFoundError, ProtocolFault, TransportError


def example_basic_query():
    """List virtual machines matching a search expression."""

    with Connection(
        url="https://engine.example.com/ovirt-engine/api",
        username="admin@internal",
        password="PASSWORD",
        ca_file="ca.pem",
    ) as conn:
        system = conn.system_service()

        # API summary
        api = system.get().xml()
        print("Engine version:", api.findtext("product_info/version/full_version"))

        # Search the vms collection
        vms = system.vms_service().list(search="name=web* and status=up", max=50).xml()
        for vm in vms.findall("vm"):
            print(vm.get("id"), vm.findtext("name"))


def example_from_env():
    """Using environment variables (OVIRT_URL, OVIRT_USERNAME, OVIRT_PASSWORD, ...)."""

    with Connection.from_env() as conn:
        if not conn.test():
            print("Engine not reachable or credentials rejected")
            return
        hosts = conn.system_service().hosts_service().list().xml()
        print(f"Found {len(hosts.findall('host'))} hosts")


def example_actions_and_errors():
    """Starting a VM and dealing with the error types."""

    with Connection.from_env(debug=True, log=logging.getLogger("engine.wire")) as conn:
        vm = conn.system_service().vms_service().item_service("123")
        try:
            vm.action("start")
        except NotFoundError:
            print("No such VM")
        except ProtocolFault as e:
            print(f"Engine refused: {e.reason} ({e.detail})")
        except AuthError as e:
            print(f"Authentication failed: {e}")
        except TransportError as e:
            if e.retryable:
                print(f"Engine unreachable ({e.kind.value}), try again later")
            raise


def example_static_token():
    """Reusing a token obtained elsewhere; it is neither refreshed nor revoked."""

    conn = Connection(
        url="https://engine.example.com/ovirt-engine/api",
        token="TOKEN",
        insecure=True,
    )
    try:
        print(conn.system_service().clusters_service().list().text)
    finally:
        conn.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    # Uncomment the example you want to run
    # example_basic_query()
    # example_from_env()
    # example_actions_and_errors()
    # example_static_token()

    print("Set up your environment variables and uncomment an example to run.")
    print("Required: OVIRT_URL and OVIRT_USERNAME/OVIRT_PASSWORD (or OVIRT_TOKEN)")
