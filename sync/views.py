from rest_framework import viewsets
from rest_framework.permissions import IsAdminUser
from rest_framework.response import Response
from rest_framework.views import APIView

from common.exceptions import UpstreamServiceError
from sync.models import SyncRun
from sync.serializers import SyncRunSerializer
from sync.services import run_full_sync


class SyncTriggerView(APIView):
    permission_classes = [IsAdminUser]
    trigger = SyncRun.Trigger.FULL

    def post(self, request):
        sync_run, summary = run_full_sync(self.trigger, user=request.user)
        if not summary.success:
            raise UpstreamServiceError(
                summary.message,
                extra={
                    "success": False,
                    "run_id": str(sync_run.id),
                    "failed_phase": summary.failed_phase,
                    "results": summary.as_dict(),
                },
            )
        return Response(
            {
                "success": True,
                "message": summary.message,
                "run_id": str(sync_run.id),
                "results": summary.as_dict(),
            }
        )


class SyncFullView(SyncTriggerView):
    trigger = SyncRun.Trigger.FULL


class SyncInventoryView(SyncTriggerView):
    trigger = SyncRun.Trigger.INVENTORY


class SyncImagesView(SyncTriggerView):
    trigger = SyncRun.Trigger.IMAGES


class SyncRunViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = SyncRun.objects.select_related("triggered_by").order_by("-started_at")
    serializer_class = SyncRunSerializer
    permission_classes = [IsAdminUser]
