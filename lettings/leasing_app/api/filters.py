import django_filters

from leasing_app.models import Property


class PropertyFilter(django_filters.FilterSet):
    city = django_filters.CharFilter(field_name="city", lookup_expr="iexact")
    minPrice = django_filters.NumberFilter(field_name="monthly_rent", lookup_expr="gte")
    maxPrice = django_filters.NumberFilter(field_name="monthly_rent", lookup_expr="lte")
    furnished = django_filters.ChoiceFilter(field_name="furnished", choices=Property.Furnished.choices)
    petsAllowed = django_filters.BooleanFilter(field_name="pets_allowed")

    class Meta:
        model = Property
        fields = ["city", "minPrice", "maxPrice", "furnished", "petsAllowed"]
