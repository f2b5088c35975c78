"""
Central constants: roles and the permissions each role grants.
"""
from __future__ import annotations

ROLE_NAMES = {
    "admin": "Administrator",
    "editor": "Editor",
    "submitter": "Submitter",
    "viewer": "Viewer",
    "kiosk": "Check-in Kiosk",
    "platform_admin": "Platform Administrator",
}

PERMISSIONS = {
    # read access
    "people.view": "People: view",
    "groups.view": "Groups: view",
    "prayers.view": "Prayer requests: view",
    "attendance.view": "Attendance: view",
    "sermons.view": "Sermons: view",
    "songs.view": "Songs: view",
    "bulletins.view": "Bulletins: view",
    "announcements.view": "Announcements: view",
    "events.view": "Events: view",
    "org.view": "Organization: view branding",
    # submitters
    "announcements.submit": "Announcements: submit",
    "prayers.submit": "Prayer requests: submit",
    # editors
    "people.edit": "People: edit",
    "groups.edit": "Groups: edit",
    "prayers.edit": "Prayer requests: edit",
    "attendance.edit": "Attendance: manage sessions",
    "attendance.checkin": "Attendance: check in",
    "sermons.edit": "Sermons: edit",
    "songs.edit": "Songs: edit",
    "bulletins.edit": "Bulletins: edit",
    "announcements.edit": "Announcements: edit",
    "announcements.approve": "Announcements: approve",
    "events.edit": "Events: edit",
    "donations.view": "Donations: view",
    "donations.edit": "Donations: edit",
    "ai.use": "AI: use sermon helper",
    # admins
    "admin.view": "Admin: view settings",
    "org.edit": "Organization: edit branding",
    "theology.edit": "Organization: edit theology profile",
    "ai.settings": "AI: manage provider settings",
    "ai.usage": "AI: view usage",
    "tenant.plan": "Tenant: manage plan",
    # platform
    "tenants.create": "Platform: create tenants",
}

_READ = (
    "people.view",
    "groups.view",
    "prayers.view",
    "attendance.view",
    "sermons.view",
    "songs.view",
    "bulletins.view",
    "announcements.view",
    "events.view",
    "org.view",
)
_SUBMIT = ("announcements.submit", "prayers.submit")
_EDIT = (
    "people.edit",
    "groups.edit",
    "prayers.edit",
    "attendance.edit",
    "attendance.checkin",
    "sermons.edit",
    "songs.edit",
    "bulletins.edit",
    "announcements.edit",
    "announcements.approve",
    "events.edit",
    "donations.view",
    "donations.edit",
    "ai.use",
)
_ADMIN = ("admin.view", "org.edit", "theology.edit", "ai.settings", "ai.usage", "tenant.plan")

ROLE_PERMISSIONS: dict[str, tuple[str, ...]] = {
    "admin": _READ + _SUBMIT + _EDIT + _ADMIN,
    "editor": _READ + _SUBMIT + _EDIT,
    "submitter": _READ + _SUBMIT,
    "viewer": _READ,
    "kiosk": ("attendance.view", "attendance.checkin"),
    "platform_admin": ("tenants.create",),
}

DEFAULT_LIST_LIMIT = 50
MAX_LIST_LIMIT = 100
