from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path('admin/', admin.site.urls),

    # --- Authentication & Profile ---
    path('api/', include('users.urls')),

    # --- Platform Settings & Audit ---
    path('api/', include('cores.urls')),

    # --- Student Exam Flow, Results & Leaderboard ---
    # Listed before the router so 'exams/<id>/start/' is not shadowed
    path('api/', include('assessments.urls')),

    # --- Notifications ---
    path('api/', include('notifications.urls')),

    # --- Catalogue (exams, questions, categories) ---
    path('api/', include('exams.urls')),
]
