from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .api.views import ExamSessionViewSet, ExamResultViewSet, ExamAnalyticsView

# Router for ViewSets
router = DefaultRouter()
router.register(r'sessions', ExamSessionViewSet, basename='session')
router.register(r'results', ExamResultViewSet, basename='result')

urlpatterns = [
    path('exams/<int:exam_id>/analytics/', ExamAnalyticsView.as_view(), name='exam-analytics'),
    path('', include(router.urls)),
]
