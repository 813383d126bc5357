PLUGIN_METADATA = {
    "version": "1.0.0",
    "description": "Account data lifecycle: purge owned records and reset the account.",
}
