# buddyband_config/urls.py
from django.urls import path
from django.http import HttpResponse


def health_check_view(request):
    return HttpResponse("BuddyBand dashboard is running", status=200, content_type="text/plain")


urlpatterns = [
    path('', health_check_view, name='root-health-check'),
    path('health-check/', health_check_view, name='health-check'),
]
