"""
Payments URL Configuration

Three pattern lists, mounted by ``elearning/urls.py``:
- payments_urlpatterns under /api/payments/
- orders_urlpatterns under /api/orders/
- enrollments_urlpatterns under /api/enrollments/
"""

from typing import List

from django.urls import URLPattern, path

from . import views

payments_urlpatterns: List[URLPattern] = [
    path('', views.PaymentHistoryView.as_view(), name='payment-history'),
    path('status/', views.GatewayStatusView.as_view(), name='gateway-status'),
    path('initiate/', views.PaymentInitiateView.as_view(), name='payment-initiate'),
    path('hpp/', views.HostedPaymentView.as_view(), name='payment-hpp'),
    path('callback/', views.PaymentCallbackView.as_view(), name='payment-callback'),
    path('verify/<str:reference_id>/', views.PaymentVerifyView.as_view(), name='payment-verify'),
    path('refund/<int:payment_id>/', views.PaymentRefundView.as_view(), name='payment-refund'),
    path('<int:payment_id>/', views.PaymentDetailView.as_view(), name='payment-detail'),
]

orders_urlpatterns: List[URLPattern] = [
    path('', views.OrderListCreateView.as_view(), name='order-list'),
    path('<str:reference_id>/', views.OrderDetailView.as_view(), name='order-detail'),
    path('<str:reference_id>/cancel/', views.OrderCancelView.as_view(), name='order-cancel'),
]

enrollments_urlpatterns: List[URLPattern] = [
    path('', views.EnrollmentListView.as_view(), name='enrollment-list'),
    path('progress/', views.EnrollmentProgressView.as_view(), name='enrollment-progress'),
]
