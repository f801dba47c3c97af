# Infrastructure clients
from clients.vault_client import (
    VaultClient,
    get_database_url,
    get_valkey_url,
    get_email_config,
    get_payment_config,
)
from clients.postgres_client import PostgresClient
from clients.valkey_client import ValkeyClient
from clients.signed_gateway import GatewayError, SignedGatewayClient
from clients.email_client import EmailGatewayClient, EmailGatewayError
from clients.payment_client import PaymentGatewayClient, PaymentGatewayError
