from django.urls import path
from . import views

app_name = 'inventory'

urlpatterns = [
    path('materials/<int:pk>/stock/', views.material_stock, name='material_stock'),
    path('materials/<int:pk>/ledger/', views.material_ledger, name='material_ledger'),
    path('materials/<int:pk>/ledger/xlsx/', views.material_ledger_xlsx, name='material_ledger_xlsx'),
    path('restock-alerts/', views.restock_alerts, name='restock_alerts'),
    path('purchases/<int:pk>/status/', views.purchase_status, name='purchase_status'),
]
