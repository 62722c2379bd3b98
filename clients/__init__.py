# Infrastructure clients
from clients.local_store import JsonFileStore, KeyValueStore, StorageError
from clients.valkey_client import ValkeyClient
from clients.sms_client import (
    SmsClient,
    SmsDeliveryResult,
    DevOtpDisplay,
    DevOtpNotice,
)
from clients.supabase_client import (
    SupabaseClient,
    SupabaseError,
    SupabaseUnavailableError,
)
