"""Operator CLI for the Fabric KeyVault + Azure OpenAI stack."""
