# examdesk_platform/exams/models.py
from django.db import models


class ExamCategory(models.Model):
    name = models.CharField(max_length=100)
    description = models.TextField(blank=True)

    def __str__(self):
        return self.name


class Exam(models.Model):
    title = models.CharField(max_length=255)
    category = models.ForeignKey(ExamCategory, on_delete=models.SET_NULL, null=True, blank=True, related_name='exams')
    description = models.TextField(blank=True)

    duration_minutes = models.PositiveIntegerField()
    total_marks = models.PositiveIntegerField(default=0)
    passing_percentage = models.DecimalField(max_digits=5, decimal_places=2, default=50)
    # Deducted per wrong answered question. Empty means the platform default (0.25);
    # an explicit 0 disables negative marking.
    negative_marking = models.DecimalField(max_digits=5, decimal_places=2, null=True, blank=True)

    is_active = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.title


class Question(models.Model):
    class QuestionType(models.TextChoices):
        MCQ = "mcq", "Multiple Choice"
        TRUE_FALSE = "true_false", "True / False"
        THEORY = "theory", "Open Ended"

    class Difficulty(models.TextChoices):
        EASY = "easy", "Easy"
        MEDIUM = "medium", "Medium"
        HARD = "hard", "Hard"

    # Nullable Exam: Allows questions to sit in the "Bank" without being assigned
    exam = models.ForeignKey(Exam, related_name='questions', on_delete=models.SET_NULL, null=True, blank=True)
    sequence = models.PositiveIntegerField(default=0, help_text="Position inside the exam")

    text = models.TextField()
    question_type = models.CharField(max_length=20, choices=QuestionType.choices, default=QuestionType.MCQ)

    # Metadata for the Bank
    category = models.CharField(max_length=100, blank=True)
    difficulty = models.CharField(max_length=20, choices=Difficulty.choices, default=Difficulty.MEDIUM)
    marks = models.PositiveIntegerField(default=1)
    randomize_options = models.BooleanField(default=False)

    # Reference answer for open ended questions (not auto-graded)
    correct_answer = models.TextField(blank=True)

    @property
    def is_gradable(self):
        return self.question_type in (self.QuestionType.MCQ, self.QuestionType.TRUE_FALSE)

    def __str__(self):
        return f"{self.text[:50]}..."


class Option(models.Model):
    question = models.ForeignKey(Question, related_name='options', on_delete=models.CASCADE)
    text = models.CharField(max_length=255)
    sequence = models.PositiveIntegerField(default=0)
    is_correct = models.BooleanField(default=False)

    def __str__(self):
        return self.text
