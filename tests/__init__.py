"""
Tests for the LINE Keyword Reply Bot

Tests are organized by functionality:
- test_template_renderer.py: Placeholder substitution in flex templates
- test_reply_selector.py: Keyword matching and reply building
- test_reply_settings.py: Settings validation and legacy shape upgrades
- test_settings_store.py: Settings file load/save and snapshot swapping
- test_event_dispatcher.py: Concurrent per-event reply handling
- test_line_client.py / test_completion_client.py: Outbound API clients
- test_webhooks.py: LINE webhook endpoint
- test_admin.py: Admin settings and upload endpoints
"""
