# -*- coding: utf-8 -*-
"""Query-string validation for the material ledger listing."""
from django import forms

from utils.exceptions import DomainValidationError

from .models import MaterialLedgerEntry


class LedgerFilterForm(forms.Form):
    source = forms.ChoiceField(choices=MaterialLedgerEntry.Source.choices, required=False)
    direction = forms.ChoiceField(choices=[("in", "In"), ("out", "Out")], required=False)
    order_id = forms.IntegerField(min_value=1, required=False)
    reference = forms.CharField(max_length=64, required=False)
    date_from = forms.DateField(required=False)
    date_to = forms.DateField(required=False)

    def clean(self):
        cd = super().clean()
        start, end = cd.get("date_from"), cd.get("date_to")
        if start and end and start > end:
            self.add_error("date_to", "must not be before date_from")
        return cd


def clean_ledger_filters(data) -> dict:
    """
    Validate ledger filters and return only the ones that were given.

    Raises ``DomainValidationError`` naming the first offending field.
    """
    form = LedgerFilterForm(data=data or {})
    if not form.is_valid():
        for field, errors in form.errors.items():
            raise DomainValidationError(field if field != "__all__" else "filters", "; ".join(errors))
    return {k: v for k, v in form.cleaned_data.items() if v not in (None, "")}
