"""
Flow Builder Service.

Conversation flow editor backend for chat and voice agents.
This service provides:

1. Node Types:
   - Flow nodes (start, message, condition, API call, DTMF, assistant,
     transfer, end)
   - Channel nodes (WhatsApp, Slack, Telegram, Teams)
   - Ticketing nodes (Zendesk, Freshdesk)
   - CRM nodes (Salesforce, HubSpot, Zoho CRM)

2. Canvas Management:
   - Flow creation, duplication, selection
   - Node and edge editing with structural checks
   - Draft saving, publishing, version history, rollback
   - Validation

3. Test Runs:
   - Simulated chat and voice sessions
   - Condition and DTMF input
   - Event log and run statistics

API:
   - POST /flows - Create new flow
   - GET /flows - List flows
   - GET /flows/{id} - Get flow
   - POST /flows/{id}/nodes - Add node
   - POST /flows/{id}/edges - Connect nodes
   - POST /flows/{id}/publish - Publish a version
   - POST /flows/{id}/validate - Validate flow
   - POST /flows/{id}/runs - Start a test run
   - GET /nodes - List available node types
"""

__version__ = "1.0.0"
