from django.urls import path

from . import views

app_name = "assessment"

urlpatterns = [
    path("tools/", views.tool_list, name="tool-list"),
    path("tools/<str:tool_type>/questions/", views.tool_questions, name="tool-questions"),
    path("context-questions/", views.context_questions, name="context-questions"),
    path("harm-categories/", views.harm_categories, name="harm-categories"),
    path("evaluate/", views.evaluate, name="evaluate"),
    path("sessions/", views.session_create, name="session-create"),
    path("sessions/<str:session_id>/", views.session_detail, name="session-detail"),
    path("sessions/<str:session_id>/usage/", views.session_usage, name="session-usage"),
    path("sessions/<str:session_id>/context/", views.session_context, name="session-context"),
    path("sessions/<str:session_id>/results/", views.session_results, name="session-results"),
    path("sessions/<str:session_id>/report/", views.session_report, name="session-report"),
]
