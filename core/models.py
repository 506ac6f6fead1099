# core/models.py
from __future__ import annotations

import uuid

from django.conf import settings
from django.db import models
from django.utils import timezone


class AuditLogEntry(models.Model):
    """
    Append-only audit trail for money- and stock-relevant actions.

    Writes are best-effort (see core.audit.record_audit); rows are never edited.
    """

    class Severity(models.TextChoices):
        INFO = "info", "Info"
        IMPORTANT = "important", "Important"
        CRITICAL = "critical", "Critical"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="audit_entries",
        help_text="Null for system actions (webhooks, sweeper, pipeline).",
    )

    action = models.CharField(max_length=64)
    entity = models.CharField(max_length=32)
    entity_id = models.CharField(max_length=64, blank=True, default="")
    meta = models.JSONField(default=dict, blank=True)
    severity = models.CharField(max_length=16, choices=Severity.choices, default=Severity.INFO)
    request_id = models.CharField(max_length=64, blank=True, default="")

    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        ordering = ("-created_at",)
        indexes = [
            models.Index(fields=["entity", "entity_id", "-created_at"], name="audit_entity_created_idx"),
            models.Index(fields=["severity", "-created_at"], name="audit_severity_created_idx"),
            models.Index(fields=["action", "-created_at"], name="audit_action_created_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.action} {self.entity}:{self.entity_id} ({self.severity})"

    def save(self, *args, **kwargs) -> None:
        if not self._state.adding:
            raise ValueError("Audit log entries are append-only.")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Audit log entries are append-only.")
