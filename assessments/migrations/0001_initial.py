import uuid

import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("exams", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="ExamAttempt",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("attempt_number", models.PositiveIntegerField(default=1)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("ongoing", "Ongoing"),
                            ("submitted", "Submitted"),
                            ("abandoned", "Abandoned"),
                            ("expired", "Expired"),
                        ],
                        default="ongoing",
                        max_length=20,
                    ),
                ),
                ("start_time", models.DateTimeField(default=django.utils.timezone.now)),
                ("end_time", models.DateTimeField(blank=True, null=True)),
                (
                    "total_time_spent",
                    models.PositiveIntegerField(blank=True, help_text="Seconds, as reported by the client", null=True),
                ),
                ("duration_minutes", models.PositiveIntegerField()),
                ("total_marks", models.PositiveIntegerField(default=0)),
                ("passing_percentage", models.DecimalField(decimal_places=2, default=50, max_digits=5)),
                ("negative_marking", models.DecimalField(blank=True, decimal_places=2, max_digits=5, null=True)),
                ("shuffle_options", models.BooleanField(blank=True, null=True)),
                ("shuffle_version", models.PositiveSmallIntegerField(default=2)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "exam",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="attempts",
                        to="exams.exam",
                    ),
                ),
                (
                    "student",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="exam_attempts",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-start_time"],
            },
        ),
        migrations.CreateModel(
            name="ExamAnswer",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("selected_option", models.IntegerField(blank=True, null=True)),
                ("answer_text", models.TextField(blank=True, null=True)),
                ("is_answered", models.BooleanField(default=False)),
                ("is_correct", models.BooleanField(default=False)),
                ("marks_obtained", models.DecimalField(decimal_places=2, default=0, max_digits=7)),
                ("is_flagged", models.BooleanField(default=False)),
                ("time_spent_seconds", models.PositiveIntegerField(default=0)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "attempt",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="answers",
                        to="assessments.examattempt",
                    ),
                ),
                (
                    "question",
                    models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to="exams.question"),
                ),
                (
                    "resolved_option",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        to="exams.option",
                    ),
                ),
            ],
        ),
        migrations.CreateModel(
            name="ExamResult",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("attempt_number", models.PositiveIntegerField(default=1)),
                ("total_marks", models.PositiveIntegerField()),
                ("obtained_marks", models.DecimalField(decimal_places=2, max_digits=8)),
                ("percentage", models.DecimalField(decimal_places=2, max_digits=7)),
                ("grade", models.CharField(max_length=2)),
                ("correct_answers", models.PositiveIntegerField(default=0)),
                ("incorrect_answers", models.PositiveIntegerField(default=0)),
                ("unanswered", models.PositiveIntegerField(default=0)),
                ("time_spent", models.PositiveIntegerField(blank=True, null=True)),
                ("status", models.CharField(choices=[("pass", "Pass"), ("fail", "Fail")], max_length=10)),
                ("negative_marking_applied", models.DecimalField(decimal_places=2, max_digits=5)),
                ("is_published", models.BooleanField(default=False)),
                ("result_date", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "attempt",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="result",
                        to="assessments.examattempt",
                    ),
                ),
                (
                    "exam",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="results",
                        to="exams.exam",
                    ),
                ),
                (
                    "student",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="exam_results",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-result_date"],
            },
        ),
        migrations.AddConstraint(
            model_name="examattempt",
            constraint=models.UniqueConstraint(
                fields=("exam", "student", "attempt_number"), name="unique_attempt_number_per_student_exam"
            ),
        ),
        migrations.AddConstraint(
            model_name="examanswer",
            constraint=models.UniqueConstraint(fields=("attempt", "question"), name="unique_answer_per_attempt_question"),
        ),
    ]
