from rest_framework import views as drf_views, generics, status
from rest_framework.response import Response
from rest_framework.filters import SearchFilter, OrderingFilter
from rest_framework.permissions import IsAdminUser, IsAuthenticated
from rest_framework_simplejwt.authentication import JWTAuthentication
from django.shortcuts import get_object_or_404
from django_filters.rest_framework import DjangoFilterBackend
from drf_yasg.utils import swagger_auto_schema
from drf_yasg import openapi

from crowdfund_api.middleware import get_client_ip
from . import serializers as my_serializers
from .models import Project
from .pagination import ProjectListPagination
from .services import ProjectLifecycleService


def request_meta(request):
    return {
        'ip_address': get_client_ip(request),
        'user_agent': request.META.get('HTTP_USER_AGENT', ''),
    }


class ProjectActionMixin:
    """Shared lookup and engine access for the project endpoints."""
    authentication_classes = [JWTAuthentication]
    permission_classes = [IsAuthenticated]

    def get_service(self):
        return ProjectLifecycleService()

    def get_project(self, pk):
        return get_object_or_404(Project.objects.visible_to(self.request.user).with_related(), pk=pk)

    def detail_data(self, project):
        project = Project.objects.with_related().get(pk=project.pk)
        return my_serializers.ProjectDetailSerializer(project, context={'request': self.request}).data


project_id_param = openapi.Parameter('pk', openapi.IN_PATH, description="Project ID", type=openapi.TYPE_INTEGER)
milestone_index_param = openapi.Parameter('index', openapi.IN_PATH, description="Milestone index", type=openapi.TYPE_INTEGER)


class ProjectListAPIView(generics.ListAPIView):
    """
    Lists crowdfunding projects.

    Query Parameters:
        - category, status (filters)
        - search (title, vision)
        - ordering (created_at, funding_goal, funding_raised, total_votes)
    """
    serializer_class = my_serializers.ProjectListSerializer
    authentication_classes = [JWTAuthentication]
    permission_classes = [IsAuthenticated]
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]
    filterset_fields = ['category', 'status']
    search_fields = ['title', 'vision']
    ordering_fields = ['created_at', 'funding_goal', 'funding_raised', 'total_votes']
    ordering = ['-created_at']
    pagination_class = ProjectListPagination

    @swagger_auto_schema(
        operation_summary="List crowdfunding projects",
        responses={200: my_serializers.ProjectListSerializer(many=True)}
    )
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)

    def get_queryset(self):
        return Project.objects.visible_to(self.request.user).select_related('creator')


class ProjectPrepareAPIView(ProjectActionMixin, drf_views.APIView):
    @swagger_auto_schema(
        operation_summary="Prepare a crowdfunding project",
        operation_description="Validates the project and returns the unsigned escrow deployment. Nothing is saved.",
        request_body=my_serializers.PrepareProjectSerializer,
        responses={200: "Unsigned transaction and prepared project", 400: "Validation error", 502: "Escrow service error"}
    )
    def post(self, request):
        serializer = my_serializers.PrepareProjectSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = self.get_service().prepare_create(request.user, serializer.validated_data)

        return Response({
            'detail': "Project prepared successfully. Please sign the transaction to complete creation.",
            **result,
        }, status=status.HTTP_200_OK)


class ProjectConfirmAPIView(ProjectActionMixin, drf_views.APIView):
    @swagger_auto_schema(
        operation_summary="Confirm a crowdfunding project",
        operation_description="Submits the signed escrow deployment and creates the project.",
        request_body=my_serializers.ConfirmProjectSerializer,
        responses={
            201: my_serializers.ProjectDetailSerializer(),
            400: "Validation error",
            409: "Signed transaction already used",
            502: "Escrow service error",
        }
    )
    def post(self, request):
        serializer = my_serializers.ConfirmProjectSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        project, tx = self.get_service().confirm_create(
            request.user,
            serializer.validated_data['signed_transaction'],
            serializer.validated_data['prepared_token'],
            meta=request_meta(request),
        )

        return Response({
            'detail': "Crowdfunding project created successfully.",
            'transaction': tx,
            'project': self.detail_data(project),
        }, status=status.HTTP_201_CREATED)


class ProjectDetailAPIView(ProjectActionMixin, drf_views.APIView):
    @swagger_auto_schema(
        operation_summary="Retrieve a crowdfunding project",
        manual_parameters=[project_id_param],
        responses={200: my_serializers.ProjectDetailSerializer(), 404: "Not found"}
    )
    def get(self, request, pk):
        project = self.get_project(pk)
        return Response(my_serializers.ProjectDetailSerializer(project, context={'request': request}).data)

    @swagger_auto_schema(
        operation_summary="Update a crowdfunding project (creator, before review)",
        manual_parameters=[project_id_param],
        request_body=my_serializers.ProjectUpdateSerializer,
        responses={200: my_serializers.ProjectDetailSerializer(), 403: "Forbidden", 409: "Invalid state"}
    )
    def patch(self, request, pk):
        project = self.get_project(pk)
        serializer = my_serializers.ProjectUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        project, changes = self.get_service().update(project, request.user, serializer.validated_data)

        return Response({
            'detail': "Project updated successfully." if changes else "No changes detected.",
            'changes': changes,
            'project': self.detail_data(project),
        }, status=status.HTTP_200_OK)

    @swagger_auto_schema(
        operation_summary="Delete a crowdfunding project (creator, before review)",
        manual_parameters=[project_id_param],
        responses={204: "Deleted", 403: "Forbidden", 409: "Invalid state"}
    )
    def delete(self, request, pk):
        project = self.get_project(pk)
        self.get_service().delete(project, request.user)
        return Response(status=status.HTTP_204_NO_CONTENT)


class ProjectReviewAPIView(ProjectActionMixin, drf_views.APIView):
    permission_classes = [IsAuthenticated, IsAdminUser]

    @swagger_auto_schema(
        operation_summary="Approve or reject a project under review (Admin only)",
        manual_parameters=[project_id_param],
        request_body=my_serializers.ReviewProjectSerializer,
        responses={200: my_serializers.ProjectDetailSerializer(), 403: "Forbidden", 409: "Invalid state"}
    )
    def post(self, request, pk):
        project = self.get_project(pk)
        serializer = my_serializers.ReviewProjectSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        action = serializer.validated_data['action']
        project = self.get_service().review(project, request.user, action, serializer.validated_data['note'])

        return Response({
            'detail': f"Project {'approved' if action == 'approve' else 'rejected'} successfully.",
            'project': self.detail_data(project),
        }, status=status.HTTP_200_OK)


class ProjectCancelAPIView(ProjectActionMixin, drf_views.APIView):
    @swagger_auto_schema(
        operation_summary="Cancel a project before any funds are raised (creator or admin)",
        manual_parameters=[project_id_param],
        request_body=my_serializers.CancelProjectSerializer,
        responses={200: my_serializers.ProjectDetailSerializer(), 403: "Forbidden", 409: "Invalid state"}
    )
    def post(self, request, pk):
        project = self.get_project(pk)
        serializer = my_serializers.CancelProjectSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        project = self.get_service().cancel(
            project, request.user, serializer.validated_data['reason'], meta=request_meta(request),
        )

        return Response({
            'detail': "Project cancelled.",
            'project': self.detail_data(project),
        }, status=status.HTTP_200_OK)


class ProjectLaunchAPIView(ProjectActionMixin, drf_views.APIView):
    permission_classes = [IsAuthenticated, IsAdminUser]

    @swagger_auto_schema(
        operation_summary="Open the funding campaign of a validated project (Admin only)",
        manual_parameters=[project_id_param],
        responses={200: my_serializers.ProjectDetailSerializer(), 409: "Invalid state"}
    )
    def post(self, request, pk):
        project = self.get_service().launch_campaign(self.get_project(pk), request.user)
        return Response({
            'detail': "Campaign launched.",
            'project': self.detail_data(project),
        }, status=status.HTTP_200_OK)


class ProjectGoLiveAPIView(ProjectActionMixin, drf_views.APIView):
    permission_classes = [IsAuthenticated, IsAdminUser]

    @swagger_auto_schema(
        operation_summary="Move a campaigning project to live (Admin only)",
        manual_parameters=[project_id_param],
        responses={200: my_serializers.ProjectDetailSerializer(), 409: "Invalid state"}
    )
    def post(self, request, pk):
        project = self.get_service().go_live(self.get_project(pk), request.user)
        return Response({
            'detail': "Project is live.",
            'project': self.detail_data(project),
        }, status=status.HTTP_200_OK)


class ProjectVoteAPIView(ProjectActionMixin, drf_views.APIView):
    @swagger_auto_schema(
        operation_summary="Vote on a validated project",
        manual_parameters=[project_id_param],
        request_body=my_serializers.VoteSerializer,
        responses={
            201: "Vote recorded",
            200: "Vote changed",
            403: "Cannot vote on own project",
            409: "Duplicate vote or voting closed",
        }
    )
    def post(self, request, pk):
        project = self.get_project(pk)
        serializer = my_serializers.VoteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = self.get_service().cast_vote(project, request.user, serializer.validated_data['value'])

        return Response({
            'detail': "Vote recorded." if result['created'] else "Vote updated.",
            'vote': result['vote'].value,
            'vote_passed': result['passed'],
            'project': self.detail_data(result['project']),
        }, status=status.HTTP_201_CREATED if result['created'] else status.HTTP_200_OK)


class FundPrepareAPIView(ProjectActionMixin, drf_views.APIView):
    @swagger_auto_schema(
        operation_summary="Prepare a contribution to a project",
        manual_parameters=[project_id_param],
        request_body=my_serializers.FundPrepareSerializer,
        responses={200: "Unsigned funding transaction", 409: "Project not accepting funding", 502: "Escrow service error"}
    )
    def post(self, request, pk):
        project = self.get_project(pk)
        serializer = my_serializers.FundPrepareSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = self.get_service().prepare_funding(
            project, request.user, serializer.validated_data['amount'], serializer.validated_data['signer'],
        )

        return Response({
            'detail': "Funding transaction prepared. Please sign to complete funding.",
            **result,
        }, status=status.HTTP_200_OK)


class FundConfirmAPIView(ProjectActionMixin, drf_views.APIView):
    @swagger_auto_schema(
        operation_summary="Confirm a contribution to a project",
        manual_parameters=[project_id_param],
        request_body=my_serializers.FundConfirmSerializer,
        responses={
            201: "Contribution recorded",
            409: "Duplicate transaction hash or project not accepting funding",
            502: "Escrow service error",
        }
    )
    def post(self, request, pk):
        project = self.get_project(pk)
        serializer = my_serializers.FundConfirmSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        result = self.get_service().confirm_funding(
            project,
            request.user,
            data['signed_transaction'],
            data['amount'],
            data['transaction_hash'],
            meta=request_meta(request),
        )
        project = result['project']

        return Response({
            'detail': f"Successfully funded project with {data['amount']} {project.currency}.",
            'transaction': result['transaction'],
            'funding': {
                'amount': result['contribution'].amount,
                'transaction_hash': result['contribution'].transaction_hash,
                'new_total_raised': project.funding_raised,
                'is_fully_funded': result['is_fully_funded'],
                'remaining_goal': project.remaining_goal,
            },
            'project': self.detail_data(project),
        }, status=status.HTTP_201_CREATED)


class MilestoneReleasePrepareAPIView(ProjectActionMixin, drf_views.APIView):
    permission_classes = [IsAuthenticated, IsAdminUser]

    @swagger_auto_schema(
        operation_summary="Prepare the release of a milestone's escrowed funds (Admin only)",
        manual_parameters=[project_id_param, milestone_index_param],
        request_body=my_serializers.MilestoneReleasePrepareSerializer,
        responses={200: "Unsigned release transaction", 404: "Milestone not found", 409: "Invalid state"}
    )
    def post(self, request, pk, index):
        project = self.get_project(pk)
        serializer = my_serializers.MilestoneReleasePrepareSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = self.get_service().prepare_milestone_release(
            project, request.user, index, serializer.validated_data['signer'],
        )
        return Response(result, status=status.HTTP_200_OK)


class MilestoneReleaseConfirmAPIView(ProjectActionMixin, drf_views.APIView):
    permission_classes = [IsAuthenticated, IsAdminUser]

    @swagger_auto_schema(
        operation_summary="Confirm the release of a milestone's escrowed funds (Admin only)",
        manual_parameters=[project_id_param, milestone_index_param],
        request_body=my_serializers.MilestoneReleaseConfirmSerializer,
        responses={200: my_serializers.MilestoneSerializer(), 409: "Invalid state or duplicate hash"}
    )
    def post(self, request, pk, index):
        project = self.get_project(pk)
        serializer = my_serializers.MilestoneReleaseConfirmSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = self.get_service().confirm_milestone_release(
            project,
            request.user,
            index,
            serializer.validated_data['signed_transaction'],
            serializer.validated_data['transaction_hash'],
        )

        return Response({
            'detail': "Milestone funds released.",
            'milestone': my_serializers.MilestoneSerializer(result['milestone']).data,
            'all_milestones_released': result['all_released'],
            'transaction': result['transaction'],
        }, status=status.HTTP_200_OK)
