# remindme/urls.py
from django.urls import include, path

urlpatterns = [
    path('', include('telegram_bot.urls')),
]
