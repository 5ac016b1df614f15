from dataclasses import dataclass

from django.db import models
from django.core.cache import cache
from django.conf import settings

SETTINGS_CACHE_KEY = 'platform_settings'


@dataclass(frozen=True)
class ExamSettings:
    """Read-only snapshot of the exam behaviour switches, taken once per request."""
    shuffle_questions: bool = True
    show_results_immediately: bool = False
    allow_review_after_submission: bool = True
    max_attempts_per_student: int = 3
    allow_retake: bool = True
    retake_cooldown_days: int = 7


class PlatformSetting(models.Model):
    # --- General & Branding ---
    site_name = models.CharField(max_length=100, default="ExamDesk")
    support_email = models.EmailField(default="support@examdesk.local")
    maintenance_mode = models.BooleanField(default=False)

    # --- Exam Defaults ---
    default_pass_mark = models.IntegerField(default=50, help_text="Default pass mark percentage")
    default_exam_duration = models.IntegerField(default=60, help_text="Default duration in minutes")

    # --- Exam Behaviour ---
    shuffle_questions = models.BooleanField(
        default=True, help_text="Shuffle options of questions flagged with randomize_options"
    )
    show_results_immediately = models.BooleanField(default=False)
    allow_review_after_submission = models.BooleanField(default=True)

    # --- Attempt Policy ---
    max_attempts_per_student = models.PositiveIntegerField(default=3)
    allow_retake = models.BooleanField(default=True)
    retake_cooldown_days = models.PositiveIntegerField(default=7)

    def save(self, *args, **kwargs):
        self.pk = 1  # Singleton pattern
        super().save(*args, **kwargs)
        cache.set(SETTINGS_CACHE_KEY, self)

    def delete(self, *args, **kwargs):
        pass

    @classmethod
    def load(cls):
        obj = cache.get(SETTINGS_CACHE_KEY)
        if obj is None:
            obj, created = cls.objects.get_or_create(pk=1)
            cache.set(SETTINGS_CACHE_KEY, obj)
        return obj

    def exam_settings(self):
        return ExamSettings(
            shuffle_questions=self.shuffle_questions,
            show_results_immediately=self.show_results_immediately,
            allow_review_after_submission=self.allow_review_after_submission,
            max_attempts_per_student=self.max_attempts_per_student,
            allow_retake=self.allow_retake,
            retake_cooldown_days=self.retake_cooldown_days,
        )

    def __str__(self):
        return "Platform Settings"


class AuditLog(models.Model):
    ACTION_CHOICES = [
        ('CREATE', 'Create'),
        ('UPDATE', 'Update'),
        ('DELETE', 'Delete'),
        ('PUBLISH', 'Result Published'),
        ('SETTINGS', 'Settings Changed'),
    ]

    actor = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, related_name='audit_logs')
    action = models.CharField(max_length=20, choices=ACTION_CHOICES)
    target_model = models.CharField(max_length=50, help_text="e.g., Exam, ExamResult, PlatformSetting")
    target_object_id = models.CharField(max_length=100, blank=True, null=True)
    details = models.TextField(blank=True, help_text="Description of changes")
    timestamp = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-timestamp']

    def __str__(self):
        return f"{self.actor} - {self.action} - {self.timestamp}"
