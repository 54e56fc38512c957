from rest_framework.pagination import LimitOffsetPagination


class LeasingLOPagination(LimitOffsetPagination):
    default_limit = 20
    max_limit = 100
    limit_query_param = 'limit'
    offset_query_param = 'offset'
