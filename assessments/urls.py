from django.urls import path
from .views import (
    StartExamView,
    SaveAnswerView,
    SubmitExamView,
    StudentExamAttemptsView,
    ExamResultDetailView,
    PublishResultView,
    LeaderboardView,
)

urlpatterns = [
    # Student Exam Flow
    path('exams/<int:exam_id>/start/', StartExamView.as_view(), name='start-exam'),
    path('exam-attempts/', StudentExamAttemptsView.as_view(), name='student-attempts'),
    path('exam-attempts/submit/', SubmitExamView.as_view(), name='submit-exam'),
    path('exam-attempts/<uuid:attempt_id>/answers/', SaveAnswerView.as_view(), name='save-answer'),

    # --- Results ---
    path('results/<uuid:pk>/', ExamResultDetailView.as_view(), name='result-detail'),
    path('leaderboard/', LeaderboardView.as_view(), name='leaderboard'),

    # --- Admin ---
    path('admin/results/<uuid:pk>/publish/', PublishResultView.as_view(), name='publish-result'),
]
