# -*- coding: utf-8 -*-
"""
Views for the maintenance app.

Rebuilds the cached completion and stock figures from progress entries and
the material ledger. Restricted to managers via the shared role lookup.
"""
from django.contrib.auth.decorators import login_required
from django.http import JsonResponse
from django.views.decorators.http import require_POST

from utils.http import json_errors, manager_required, read_json

from .services import reconcile_caches


@require_POST
@login_required
@manager_required
@json_errors
def reconcile(request):
    """Run reconciliation; ``{"dry_run": true}`` only reports drift."""
    data = read_json(request)
    dry_run = str(data.get("dry_run", "")).lower() in ("1", "true", "yes", "on")
    report = reconcile_caches(fix=not dry_run, user=request.user)
    return JsonResponse({"ok": True, **report.as_dict()})
