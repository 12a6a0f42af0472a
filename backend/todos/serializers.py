from rest_framework import serializers


class TaskSnapshotListSerializer(serializers.ListSerializer):
    def validate(self, attrs):
        seen = set()
        for t in attrs:
            if t['id'] in seen:
                raise serializers.ValidationError(f"Duplicate task id: {t['id']}")
            seen.add(t['id'])
        return attrs


class TaskSnapshotSerializer(serializers.Serializer):
    id = serializers.IntegerField()
    title = serializers.CharField()
    # left free-form: malformed dependency data is tolerated per task, not rejected
    dependencies = serializers.JSONField(required=False, allow_null=True)

    class Meta:
        list_serializer_class = TaskSnapshotListSerializer


class CandidateTaskSerializer(serializers.Serializer):
    """A task about to be created (no id yet) or edited (existing id)."""
    id = serializers.IntegerField(required=False)
    dependencies = serializers.ListField(child=serializers.IntegerField(), required=False, default=list)


class DependencyCheckSerializer(serializers.Serializer):
    tasks = TaskSnapshotSerializer(many=True)
    task = CandidateTaskSerializer()
