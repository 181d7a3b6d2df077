from django.contrib import admin
from .models import Project, Milestone, Crowdfund, Vote, Contribution, Activity, TeamInvitation


class MilestoneInline(admin.TabularInline):
    model = Milestone
    extra = 0
    readonly_fields = ('index', 'amount', 'status', 'completed_at', 'release_transaction_hash')


@admin.register(Project)
class ProjectAdmin(admin.ModelAdmin):
    list_display = ('id', 'title', 'creator', 'status', 'funding_goal', 'funding_raised', 'total_votes', 'created_at')
    list_filter = ('status', 'category')
    search_fields = ('title', 'creator__email')
    # status and funding only change through the lifecycle endpoints
    readonly_fields = ('status', 'funding_raised', 'total_votes', 'positive_votes', 'negative_votes', 'reviewed_by', 'reviewed_at')
    inlines = [MilestoneInline]


@admin.register(Crowdfund)
class CrowdfundAdmin(admin.ModelAdmin):
    list_display = ('id', 'project', 'status', 'total_votes', 'threshold_votes', 'vote_deadline')
    list_filter = ('status',)


@admin.register(Vote)
class VoteAdmin(admin.ModelAdmin):
    list_display = ('id', 'project', 'user', 'value', 'created_at')


@admin.register(Contribution)
class ContributionAdmin(admin.ModelAdmin):
    list_display = ('id', 'project', 'user', 'amount', 'transaction_hash', 'date')
    search_fields = ('transaction_hash', 'user__email', 'project__title')


@admin.register(Activity)
class ActivityAdmin(admin.ModelAdmin):
    list_display = ('id', 'user', 'project', 'activity_type', 'amount', 'created_at')
    list_filter = ('activity_type',)


@admin.register(TeamInvitation)
class TeamInvitationAdmin(admin.ModelAdmin):
    list_display = ('id', 'project', 'email', 'status', 'created_at')
    list_filter = ('status',)
