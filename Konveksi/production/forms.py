# -*- coding: utf-8 -*-
"""Request parsing for progress submissions.

The JSON body of a progress request is validated field by field with Django
forms and turned into the dataclasses of ``production.submissions``.
"""
from django import forms
from django.conf import settings

from utils.exceptions import DomainValidationError

from .models import ProgressBatch
from .submissions import AggregatedSubmission, PerProductSubmission, PhotoRef, ProductSubmission, SubmissionMeta


class PhotoForm(forms.Form):
    url = forms.URLField(max_length=500)
    thumbnail_url = forms.URLField(max_length=500, required=False)
    caption = forms.CharField(max_length=255, required=False)


class ProductSubmissionForm(forms.Form):
    line_item_id = forms.IntegerField(min_value=1)
    pcs_finished = forms.IntegerField(min_value=0, required=False)
    fabric_used = forms.DecimalField(min_value=0, max_digits=12, decimal_places=3, required=False)
    quality_score = forms.IntegerField(min_value=0, max_value=100, required=False)
    quality_notes = forms.CharField(required=False)
    challenges = forms.CharField(required=False)
    material_id = forms.IntegerField(min_value=1, required=False)


class AggregatedSubmissionForm(forms.Form):
    pcs_finished = forms.IntegerField(min_value=0, required=False)
    fabric_used = forms.DecimalField(min_value=0, max_digits=12, decimal_places=3, required=False)
    note = forms.CharField(required=False)
    material_id = forms.IntegerField(min_value=1, required=False)


class SubmissionMetaForm(forms.Form):
    kind = forms.ChoiceField(choices=ProgressBatch.Kind.choices, required=False)
    worker_name = forms.CharField(max_length=100, required=False)
    note = forms.CharField(required=False)
    client_reference = forms.CharField(max_length=64, required=False)


def _raise_first_error(form, prefix=""):
    for field, errors in form.errors.items():
        name = f"{prefix}{field}" if field != "__all__" else (prefix.rstrip(".") or "payload")
        raise DomainValidationError(name, "; ".join(str(e) for e in errors))


def _clean(form_class, data, prefix=""):
    if not isinstance(data, dict):
        raise DomainValidationError(prefix.rstrip(".") or "payload", "must be an object")
    form = form_class(data=data)
    if not form.is_valid():
        _raise_first_error(form, prefix)
    return form.cleaned_data


def _parse_photos(raw, prefix: str):
    if raw in (None, ""):
        return []
    if not isinstance(raw, list):
        raise DomainValidationError(f"{prefix}photos", "must be a list")
    max_photos = int(getattr(settings, "KONVEKSI_MAX_PROGRESS_PHOTOS", 5))
    if len(raw) > max_photos:
        raise DomainValidationError(f"{prefix}photos", f"at most {max_photos} photos per entry")
    photos = []
    for idx, item in enumerate(raw):
        if isinstance(item, str):
            item = {"url": item}
        cd = _clean(PhotoForm, item, f"{prefix}photos[{idx}].")
        photos.append(PhotoRef(url=cd["url"], thumbnail_url=cd["thumbnail_url"] or "", caption=cd["caption"] or ""))
    return photos


def parse_submission_payload(data):
    """
    Parse a request body into ``(payload, meta)``.

    ``payload`` is a ``PerProductSubmission`` or an ``AggregatedSubmission``
    depending on ``kind`` (``individual`` by default).
    """
    if not isinstance(data, dict):
        raise DomainValidationError("payload", "must be a JSON object")
    cd = _clean(SubmissionMetaForm, data)
    meta = SubmissionMeta(
        worker_name=cd["worker_name"] or "",
        note=cd["note"] or "",
        client_reference=cd["client_reference"] or None,
        kind=cd["kind"] or ProgressBatch.Kind.INDIVIDUAL,
    )

    if meta.kind == ProgressBatch.Kind.AGGREGATED:
        agg = _clean(AggregatedSubmissionForm, data)
        photos = _parse_photos(data.get("photos") or ([data["photo_url"]] if data.get("photo_url") else []), "")
        payload = AggregatedSubmission(
            pcs_finished=agg["pcs_finished"] or 0,
            note=agg["note"] or meta.note,
            fabric_used=agg["fabric_used"],
            photos=photos,
            material_id=agg["material_id"],
        )
        return payload, meta

    raw_items = data.get("items")
    if not isinstance(raw_items, list) or not raw_items:
        raise DomainValidationError("items", "at least one entry is required")
    rows = []
    for idx, raw in enumerate(raw_items):
        prefix = f"items[{idx}]."
        item = _clean(ProductSubmissionForm, raw, prefix)
        rows.append(ProductSubmission(
            line_item_id=item["line_item_id"],
            pcs_finished=item["pcs_finished"] or 0,
            fabric_used=item["fabric_used"],
            quality_score=item["quality_score"],
            quality_notes=item["quality_notes"] or "",
            challenges=item["challenges"] or "",
            photos=_parse_photos(raw.get("photos"), prefix),
            material_id=item["material_id"],
        ))
    return PerProductSubmission(items=rows), meta
