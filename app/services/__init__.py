"""
Services package for business logic.
"""
from app.services.event_dispatcher import EventDispatcher, EventResult
from app.services.settings_store import SettingsStore, SettingsPersistenceError

__all__ = ['EventDispatcher', 'EventResult', 'SettingsStore', 'SettingsPersistenceError']
