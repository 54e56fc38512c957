app_name = "api"

from django.urls import path

from leasing_app.api.views import (
    # Properties
    PropertyListCreateView, PropertyDetailView,

    # Bookings & applications
    BookingListCreateView, BookingDetailView,
    ApplicationListView, ApplicationDetailView,

    # Contracts
    ContractListCreateView, ContractDetailView, ContractDocumentView,

    # Payments & subscriptions
    PaymentListCreateView, PaymentStatusView,
    SubscriptionListCreateView, SubscriptionDetailView,

    # Webhooks
    payment_webhook,
)


urlpatterns = [
    # Properties
    path("properties/", PropertyListCreateView.as_view(), name="property-list"),
    path("properties/<int:pk>/", PropertyDetailView.as_view(), name="property-detail"),

    # Bookings
    path("bookings/", BookingListCreateView.as_view(), name="booking-list"),
    path("bookings/<int:pk>/", BookingDetailView.as_view(), name="booking-detail"),

    # Applications
    path("applications/", ApplicationListView.as_view(), name="application-list"),
    path("applications/<int:pk>/", ApplicationDetailView.as_view(), name="application-detail"),

    # Contracts
    path("contracts/", ContractListCreateView.as_view(), name="contract-list"),
    path("contracts/<int:pk>/", ContractDetailView.as_view(), name="contract-detail"),
    path("contracts/<int:pk>/document/", ContractDocumentView.as_view(), name="contract-document"),

    # Payments
    path("payments/", PaymentListCreateView.as_view(), name="payment-list"),
    path("payments/status/", PaymentStatusView.as_view(), name="payment-status"),

    # Subscriptions
    path("subscriptions/", SubscriptionListCreateView.as_view(), name="subscription-list"),
    path("subscriptions/<int:pk>/", SubscriptionDetailView.as_view(), name="subscription-detail"),

    # Webhooks
    path("webhooks/payment/", payment_webhook, name="webhooks-payment"),
]
