from django.urls import path

from . import views


urlpatterns = [
    path('projects/', views.ProjectListAPIView.as_view(), name='project-list'),
    path('projects/prepare/', views.ProjectPrepareAPIView.as_view(), name='project-prepare'),
    path('projects/confirm/', views.ProjectConfirmAPIView.as_view(), name='project-confirm'),
    path('projects/<int:pk>/', views.ProjectDetailAPIView.as_view(), name='project-detail'),
    path('projects/<int:pk>/review/', views.ProjectReviewAPIView.as_view(), name='project-review'),
    path('projects/<int:pk>/cancel/', views.ProjectCancelAPIView.as_view(), name='project-cancel'),
    path('projects/<int:pk>/launch/', views.ProjectLaunchAPIView.as_view(), name='project-launch'),
    path('projects/<int:pk>/go-live/', views.ProjectGoLiveAPIView.as_view(), name='project-go-live'),
    path('projects/<int:pk>/vote/', views.ProjectVoteAPIView.as_view(), name='project-vote'),
    path('projects/<int:pk>/fund/prepare/', views.FundPrepareAPIView.as_view(), name='project-fund-prepare'),
    path('projects/<int:pk>/fund/confirm/', views.FundConfirmAPIView.as_view(), name='project-fund-confirm'),
    path(
        'projects/<int:pk>/milestones/<int:index>/release/prepare/',
        views.MilestoneReleasePrepareAPIView.as_view(),
        name='milestone-release-prepare',
    ),
    path(
        'projects/<int:pk>/milestones/<int:index>/release/confirm/',
        views.MilestoneReleaseConfirmAPIView.as_view(),
        name='milestone-release-confirm',
    ),
]
