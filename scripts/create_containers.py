"""
Cosmos DB Provisioning Script for the Dental Clinic Messaging service.

Creates the database and every clinic container using AzureCliCredential.
Accounts with data-plane container creation disabled get the equivalent
Azure CLI commands printed instead.

Usage:
    python scripts/create_containers.py [--account-name NAME] [--resource-group RG]

Environment:
    COSMOS_ENDPOINT - Override the default Cosmos DB endpoint
    COSMOS_DATABASE - Override the default database name

Containers Created (all partitioned by /id):
    - appointmentChats           - Appointment chat threads
    - appointmentChats_messages  - Messages of appointment chats (threadId)
    - chats                      - Member chat threads (id = member id)
    - chats_messages             - Messages of member chats (threadId)
    - notifications              - Per-user notifications
    - appointments               - Appointment records
"""

import argparse
import logging
import sys
from pathlib import Path

# Add project root to path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from azure.cosmos import CosmosClient, PartitionKey
from azure.cosmos.exceptions import CosmosHttpResponseError
from azure.identity import AzureCliCredential

# Import configuration from shared module
from shared.cosmos_config import (
    COSMOS_ENDPOINT,
    DATABASE_NAME,
    CLINIC_CONTAINERS,
)

# Configure logging
logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


def print_cli_commands(account_name: str, resource_group: str):
    """Log the Azure CLI commands that create all containers."""
    logger.info("\n--- Azure CLI Commands to Create All Containers ---")
    for container_name, partition_key in CLINIC_CONTAINERS.values():
        logger.info(
            f'az cosmosdb sql container create --account-name "{account_name}" '
            f'--database-name "{DATABASE_NAME}" --name "{container_name}" '
            f'--partition-key-path "{partition_key}" --resource-group "{resource_group}"'
        )


def main(argv=None) -> int:
    """Create the clinic database and containers."""
    parser = argparse.ArgumentParser(description="Create Cosmos DB containers for the clinic service")
    parser.add_argument("--account-name", default="dental-clinic-db")
    parser.add_argument("--resource-group", default="dental-clinic-rg")
    args = parser.parse_args(argv)

    logger.info("=" * 60)
    logger.info("Dental Clinic Messaging - Cosmos DB Provisioning")
    logger.info("=" * 60)
    logger.info(f"Endpoint: {COSMOS_ENDPOINT}")
    logger.info(f"Database: {DATABASE_NAME}")
    logger.info("Authentication: AzureCliCredential")
    logger.info("=" * 60)

    credential = AzureCliCredential()
    client = CosmosClient(COSMOS_ENDPOINT, credential=credential)

    try:
        database = client.create_database_if_not_exists(id=DATABASE_NAME)
        created = 0
        for container_name, partition_key in CLINIC_CONTAINERS.values():
            database.create_container_if_not_exists(
                id=container_name,
                partition_key=PartitionKey(path=partition_key),
            )
            logger.info(f"  {container_name} (partition: {partition_key})")
            created += 1
    except CosmosHttpResponseError as e:
        logger.error(f"Provisioning failed: {e.message}")
        logger.error("Data-plane creation may be disabled on this account; use the Azure CLI instead")
        print_cli_commands(args.account_name, args.resource_group)
        return 1

    logger.info("=" * 60)
    logger.info(f"COMPLETE: {created} containers ready in '{DATABASE_NAME}'")
    logger.info("=" * 60)
    return 0


if __name__ == "__main__":
    sys.exit(main())
