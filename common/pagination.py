from rest_framework.pagination import PageNumberPagination


class StandardResultsSetPagination(PageNumberPagination):
    """Shared pagination for queue, archive and inventory listings.

    `?page_size=` is honoured up to `max_page_size`; archive listings can be
    large after a bulk or nuclear archive, so the cap stays conservative.
    """

    page_size_query_param = "page_size"
    max_page_size = 500
