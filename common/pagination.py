from rest_framework.pagination import PageNumberPagination


class StandardResultsSetPagination(PageNumberPagination):
    """Shared pagination for list endpoints.

    The storefront loads whole categories at once, so the cap is generous,
    but `?page_size=` is still bounded.
    """

    page_size_query_param = "page_size"
    max_page_size = 500
