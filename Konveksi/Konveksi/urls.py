from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path('admin/', admin.site.urls),

    # Apps
    path('orders/', include('orders.urls')),
    path('inventory/', include('inventory.urls')),
    path('production/', include('production.urls')),
    path('maintenance/', include('maintenance.urls')),
]
