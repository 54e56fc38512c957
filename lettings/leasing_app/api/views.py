import logging

import stripe
from django.conf import settings
from django.db.models import Q
from django.http import HttpResponse
from django.views.decorators.csrf import csrf_exempt
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import generics, status
from rest_framework.decorators import (
    api_view,
    authentication_classes,
    permission_classes,
    throttle_classes,
)
from rest_framework.permissions import AllowAny, IsAuthenticated, IsAuthenticatedOrReadOnly
from rest_framework.response import Response
from rest_framework.views import APIView

from leasing_app.api.exceptions import ExternalServiceFailure, ValidationFailed
from leasing_app.api.filters import PropertyFilter
from leasing_app.api.pagination import LeasingLOPagination
from leasing_app.api.permissions import IsLandlord, IsLandlordOwnerOrReadOnly
from leasing_app.api.serializers import (
    ApplicationReviewSerializer,
    ApplicationSerializer,
    BookingActionSerializer,
    BookingCreateSerializer,
    BookingSerializer,
    ContractCreateSerializer,
    ContractDetailSerializer,
    ContractSerializer,
    ContractSignSerializer,
    PaymentCreateSerializer,
    PaymentSerializer,
    PropertySerializer,
    SignatureSerializer,
    SubscriptionCreateSerializer,
    SubscriptionManageSerializer,
    SubscriptionSerializer,
    camelize,
)
from leasing_app.api.throttling import WebhookThrottle
from leasing_app.models import Property
from leasing_app.services import applications as application_service
from leasing_app.services import bookings as booking_service
from leasing_app.services import contracts as contract_service
from leasing_app.services import gateway
from leasing_app.services import payments as payment_service
from leasing_app.services import subscriptions as subscription_service
from leasing_app.services.contract_document import render_contract_html
from leasing_app.services.webhooks import process_event

logger = logging.getLogger(__name__)


def _client_ip(request):
    forwarded = request.META.get("HTTP_X_FORWARDED_FOR", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.META.get("REMOTE_ADDR") or None


# --------------------
# Properties
# --------------------
class PropertyListCreateView(generics.ListCreateAPIView):
    """GET available listings (or ?mine=true for the landlord's own) / POST create a draft."""
    serializer_class = PropertySerializer
    permission_classes = [IsAuthenticatedOrReadOnly, IsLandlord]
    pagination_class = LeasingLOPagination
    filter_backends = [DjangoFilterBackend]
    filterset_class = PropertyFilter

    def get_queryset(self):
        qs = Property.objects.select_related("landlord")
        user = self.request.user
        if self.request.query_params.get("mine") in ("1", "true") and user.is_authenticated:
            return qs.filter(landlord=user)
        return qs.filter(status=Property.Status.AVAILABLE)

    def perform_create(self, serializer):
        serializer.save(landlord=self.request.user, status=Property.Status.DRAFT)


class PropertyDetailView(generics.RetrieveUpdateAPIView):
    serializer_class = PropertySerializer
    permission_classes = [IsAuthenticatedOrReadOnly, IsLandlordOwnerOrReadOnly]
    http_method_names = ["get", "patch"]

    def get_queryset(self):
        qs = Property.objects.select_related("landlord")
        user = self.request.user
        visible = Q(status=Property.Status.AVAILABLE)
        if user.is_authenticated:
            visible |= Q(landlord=user)
        return qs.filter(visible)


# --------------------
# Bookings
# --------------------
class BookingListCreateView(generics.ListAPIView):
    """GET my bookings (?userType=landlord for received ones) / POST viewing or lease application."""
    serializer_class = BookingSerializer
    permission_classes = [IsAuthenticated]
    pagination_class = LeasingLOPagination

    def get_queryset(self):
        params = self.request.query_params
        return booking_service.bookings_for(
            self.request.user,
            user_type=params.get("userType"),
            booking_type=params.get("type"),
            status=params.get("status"),
        )

    def post(self, request):
        ser = BookingCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        booking, application = booking_service.submit_booking(tenant=request.user, data=ser.validated_data)

        body = {"booking": BookingSerializer(booking).data}
        if application is not None:
            body["application"] = ApplicationSerializer(application).data
        return Response(body, status=status.HTTP_201_CREATED)


class BookingDetailView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        booking = booking_service.get_booking_for_party(request.user, pk)
        return Response(BookingSerializer(booking).data)

    def patch(self, request, pk):
        ser = BookingActionSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        booking = booking_service.update_booking_status(
            user=request.user,
            booking_id=pk,
            action=ser.validated_data["action"],
            reason=ser.validated_data["reason"],
        )
        return Response(BookingSerializer(booking).data)


# --------------------
# Applications
# --------------------
class ApplicationListView(generics.ListAPIView):
    serializer_class = ApplicationSerializer
    permission_classes = [IsAuthenticated]
    pagination_class = LeasingLOPagination

    def get_queryset(self):
        params = self.request.query_params
        return application_service.applications_for(
            self.request.user,
            user_type=params.get("userType"),
            status=params.get("status"),
            property_id=params.get("propertyId"),
        )


class ApplicationDetailView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        application = application_service.get_application_for_party(request.user, pk)
        return Response(ApplicationSerializer(application).data)

    def patch(self, request, pk):
        """Landlord decision: approve / reject (with rejectionReason) / review."""
        ser = ApplicationReviewSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        application = application_service.review_application(
            user=request.user,
            application_id=pk,
            action=ser.validated_data["action"],
            rejection_reason=ser.validated_data["rejection_reason"],
            next_steps=ser.validated_data["next_steps"],
        )
        return Response(ApplicationSerializer(application).data)


# --------------------
# Contracts
# --------------------
class ContractListCreateView(generics.ListAPIView):
    serializer_class = ContractSerializer
    permission_classes = [IsAuthenticated]
    pagination_class = LeasingLOPagination

    def get_queryset(self):
        params = self.request.query_params
        return contract_service.contracts_for(
            self.request.user,
            user_type=params.get("userType"),
            status=params.get("status"),
        )

    def post(self, request):
        ser = ContractCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        contract, data = contract_service.create_contract(
            user=request.user,
            application_id=ser.validated_data.get("application_id"),
            property_id=ser.validated_data.get("property_id"),
        )
        return Response(
            {"contract": ContractSerializer(contract).data, "contractData": camelize(data)},
            status=status.HTTP_201_CREATED,
        )


class ContractDetailView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        contract = contract_service.get_contract_for_party(request.user, pk)
        return Response(ContractDetailSerializer(contract).data)

    def patch(self, request, pk):
        ser = ContractSignSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        if ser.validated_data["action"] != "sign":
            raise ValidationFailed("Invalid action")

        signature, contract, fully_signed = contract_service.sign_contract(
            user=request.user,
            contract_id=pk,
            signature_data=ser.validated_data["signature_data"],
            ip_address=_client_ip(request),
        )
        return Response(
            {
                "signature": SignatureSerializer(signature).data,
                "contract": ContractSerializer(contract).data,
                "isFullySigned": fully_signed,
            }
        )


class ContractDocumentView(APIView):
    """Printable HTML rental agreement for either party."""
    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        contract = contract_service.get_contract_for_party(request.user, pk)
        return HttpResponse(render_contract_html(contract), content_type="text/html; charset=utf-8")


# --------------------
# Payments
# --------------------
class PaymentListCreateView(generics.ListAPIView):
    serializer_class = PaymentSerializer
    permission_classes = [IsAuthenticated]
    pagination_class = LeasingLOPagination

    def get_queryset(self):
        params = self.request.query_params
        return payment_service.payments_for(
            self.request.user,
            user_type=params.get("userType"),
            status=params.get("status"),
            payment_type=params.get("paymentType"),
        )

    def post(self, request):
        ser = PaymentCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        payment, intent = payment_service.create_payment(user=request.user, data=ser.validated_data)
        return Response(
            {
                "payment": PaymentSerializer(payment).data,
                "clientSecret": gateway.field(intent, "client_secret"),
                "paymentIntentId": payment.stripe_payment_intent_id,
                "publishableKey": settings.STRIPE_PUBLISHABLE_KEY,
            },
            status=status.HTTP_201_CREATED,
        )


class PaymentStatusView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        info = payment_service.payment_status(
            user=request.user, intent_id=request.query_params.get("payment_intent", "")
        )
        return Response(camelize(info))


# --------------------
# Subscriptions
# --------------------
class SubscriptionListCreateView(generics.ListAPIView):
    serializer_class = SubscriptionSerializer
    permission_classes = [IsAuthenticated]
    pagination_class = LeasingLOPagination

    def get_queryset(self):
        params = self.request.query_params
        return subscription_service.subscriptions_for(
            self.request.user,
            user_type=params.get("userType"),
            status=params.get("status"),
        )

    def post(self, request):
        ser = SubscriptionCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        subscription, next_payment_date = subscription_service.create_subscription(
            user=request.user,
            contract_id=ser.validated_data.get("contract_id"),
            payment_day=ser.validated_data.get("payment_day"),
            currency=ser.validated_data.get("currency") or None,
        )
        return Response(
            {"subscription": SubscriptionSerializer(subscription).data, "nextPaymentDate": next_payment_date},
            status=status.HTTP_201_CREATED,
        )


class SubscriptionDetailView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        subscription = subscription_service.get_subscription_for_party(request.user, pk)
        try:
            details = camelize(subscription_service.subscription_details(subscription))
        except ExternalServiceFailure:
            # local mirror is still useful when the gateway is unreachable
            details = None
        return Response({"subscription": SubscriptionSerializer(subscription).data, "gateway": details})

    def patch(self, request, pk):
        ser = SubscriptionManageSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        subscription, remote = subscription_service.manage_subscription(
            user=request.user,
            subscription_id=pk,
            action=ser.validated_data["action"],
            updates=ser.validated_data.get("updates"),
        )
        return Response(
            {
                "subscription": SubscriptionSerializer(subscription).data,
                "action": ser.validated_data["action"],
                "gatewayStatus": gateway.field(remote, "status"),
            }
        )


# --------------------
# Payment gateway webhooks
# --------------------
@csrf_exempt
@api_view(["POST"])
@authentication_classes([])
@permission_classes([AllowAny])
@throttle_classes([WebhookThrottle])
def payment_webhook(request):
    payload = request.body
    sig_header = request.META.get("HTTP_STRIPE_SIGNATURE", "")

    try:
        event = stripe.Webhook.construct_event(
            payload=payload, sig_header=sig_header, secret=settings.STRIPE_WEBHOOK_SECRET
        )
    except (ValueError, stripe.SignatureVerificationError):
        logger.warning("Rejected webhook with invalid payload or signature")
        return Response({"error": "Invalid signature"}, status=status.HTTP_400_BAD_REQUEST)

    return Response(process_event(event))
