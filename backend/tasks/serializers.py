from rest_framework import serializers

from .exceptions import InvalidInput
from .logic import normalize_status


class StatusField(serializers.CharField):
    def to_internal_value(self, data):
        value = super().to_internal_value(data)
        try:
            return normalize_status(value)
        except InvalidInput as exc:
            raise serializers.ValidationError(exc.detail)


class TaskInputSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, allow_blank=True, default="")
    due_date = serializers.DateField()
    status = StatusField(required=False)
    dependencies = serializers.ListField(child=serializers.UUIDField(), required=False, default=list)


class TaskUpdateSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=255, required=False)
    description = serializers.CharField(required=False, allow_blank=True)
    due_date = serializers.DateField(required=False)
    status = StatusField(required=False)
    dependencies = serializers.ListField(child=serializers.UUIDField(), required=False)


class StatusInputSerializer(serializers.Serializer):
    status = StatusField()


class DependencySetSerializer(serializers.Serializer):
    dependencies = serializers.ListField(child=serializers.UUIDField(), allow_empty=True)


class TaskSummarySerializer(serializers.Serializer):
    id = serializers.UUIDField()
    title = serializers.CharField()
    status = serializers.CharField()
    due_date = serializers.DateField()


class TaskSerializer(serializers.Serializer):
    id = serializers.UUIDField()
    title = serializers.CharField()
    description = serializers.CharField()
    status = serializers.CharField()
    due_date = serializers.DateField()
    completed_at = serializers.DateTimeField(allow_null=True)
    dependencies = TaskSummarySerializer(many=True)
    dependents = TaskSummarySerializer(many=True)
    created_at = serializers.DateTimeField()
    updated_at = serializers.DateTimeField()
